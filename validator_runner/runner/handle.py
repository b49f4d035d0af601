from __future__ import annotations

import bittensor as bt
from solders.keypair import Keypair

from validator_runner.genesis.descriptor import GenesisDescriptor
from validator_runner.ports.registry import PortRegistry, PortSet
from validator_runner.services.interfaces import RpcClient, ValidatorHandle
from validator_runner.shared.logging import log_event


class RunnerHandle:
    """
    A ready local validator and everything reserved for it.

    - Owns the PortSet until `release()`; release is idempotent and never raises
    - `aclose()` also stops the validator and closes the client
    - Use as `async with handle:` so ports are freed on every exit path
    """

    def __init__(
        self,
        *,
        registry: PortRegistry,
        ports: PortSet,
        genesis: GenesisDescriptor,
        validator: ValidatorHandle,
        mint_keypair: Keypair,
        rpc: RpcClient,
    ) -> None:
        self._registry = registry
        self._ports = ports
        self._genesis = genesis
        self._validator = validator
        self._mint_keypair = mint_keypair
        self._rpc = rpc
        self._released = False
        self._closed = False

    @property
    def rpc_url(self) -> str:
        return self._validator.rpc_url()

    @property
    def pubsub_url(self) -> str:
        return self._validator.rpc_pubsub_url()

    @property
    def rpc(self) -> RpcClient:
        return self._rpc

    @property
    def validator(self) -> ValidatorHandle:
        return self._validator

    @property
    def genesis(self) -> GenesisDescriptor:
        return self._genesis

    @property
    def ports(self) -> PortSet:
        return self._ports

    @property
    def mint_keypair(self) -> Keypair:
        return self._mint_keypair

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Free every reserved port. Does not stop the validator process."""
        if self._released:
            return
        self._released = True
        try:
            self._registry.release(self._ports)
        except Exception as e:
            bt.logging.error({"runner_release_error": {"rpc_port": self._ports.rpc, "error": str(e)}})
            return
        bt.logging.info({"runner_released": {"rpc_port": self._ports.rpc}})
        log_event(f"released ports rpc={self._ports.rpc}")

    async def aclose(self) -> None:
        """Stop the validator, close the client, then release the ports."""
        if not self._closed:
            self._closed = True
            try:
                await self._validator.stop()
            except Exception as e:
                bt.logging.warning({"runner_validator_stop_error": str(e)})
            try:
                await self._rpc.aclose()
            except Exception as e:
                bt.logging.warning({"runner_client_close_error": str(e)})
        self.release()

    async def __aenter__(self) -> "RunnerHandle":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        state = "released" if self._released else "ready"
        return f"RunnerHandle(rpc_url={self.rpc_url!r}, {state})"


__all__ = ["RunnerHandle"]
