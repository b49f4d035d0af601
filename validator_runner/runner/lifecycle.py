"""Startup orchestration for one local validator.

A `Runner` takes a `RunnerConfig` through a fixed sequence of stages and
returns a `RunnerHandle` only if every stage succeeds:

    UNSTARTED -> PORTS_RESERVED -> AUX_SERVICE_RUNNING -> GENESIS_BUILT
              -> PRIMARY_SERVICE_STARTED -> CLIENT_WARMED -> READY

Any failure moves the runner to FAILED, frees the ports it reserved, stops a
validator it already started and raises the stage's `RunnerError` with the
collaborator's exception as its cause. Nothing is retried here; only the port
allocator retries, inside its own attempt budget.
"""

from __future__ import annotations

import asyncio
import threading
from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncIterator, Awaitable, Optional, TypeVar

import bittensor as bt
from solders.keypair import Keypair

from validator_runner.client.rpc import default_client_factory
from validator_runner.config.models import RunnerConfig
from validator_runner.config.settings import HarnessSettings, load_settings
from validator_runner.errors import (
    AuxServiceStartupFailed,
    PrimaryServiceStartupFailed,
    RunnerTimeout,
    WarmupFailed,
)
from validator_runner.genesis.descriptor import GenesisDescriptor, build_genesis
from validator_runner.ports.registry import PortRegistry, PortSet, default_registry
from validator_runner.runner.handle import RunnerHandle
from validator_runner.services.ack import AckChannel, ChannelClosed, FaucetAck
from validator_runner.services.faucet import HostedFaucetService
from validator_runner.services.interfaces import (
    ClientFactory,
    FaucetService,
    RpcClient,
    ValidatorHandle,
    ValidatorService,
)
from validator_runner.services.solana_validator import SolanaTestValidatorService
from validator_runner.shared.logging import log_event
from validator_runner.shared.units import sol_to_lamports

T = TypeVar("T")

WARMUP_LAMPORTS = sol_to_lamports(500.0)


class RunnerState(str, Enum):
    UNSTARTED = "unstarted"
    PORTS_RESERVED = "ports_reserved"
    AUX_SERVICE_RUNNING = "aux_service_running"
    GENESIS_BUILT = "genesis_built"
    PRIMARY_SERVICE_STARTED = "primary_service_started"
    CLIENT_WARMED = "client_warmed"
    READY = "ready"
    FAILED = "failed"


class Runner:
    """Provisions one validator. Instances are single-use."""

    def __init__(
        self,
        registry: Optional[PortRegistry] = None,
        faucet_service: Optional[FaucetService] = None,
        validator_service: Optional[ValidatorService] = None,
        client_factory: Optional[ClientFactory] = None,
        settings: Optional[HarnessSettings] = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.registry = registry if registry is not None else default_registry()
        self.faucet_service = faucet_service or HostedFaucetService()
        self.validator_service = validator_service or SolanaTestValidatorService(self.settings)
        self.client_factory = client_factory or default_client_factory
        self.state = RunnerState.UNSTARTED
        self._faucet_thread: Optional[threading.Thread] = None

    async def run(self, config: Optional[RunnerConfig] = None) -> RunnerHandle:
        if self.state is not RunnerState.UNSTARTED:
            raise RuntimeError(f"runner already used (state={self.state.value})")
        config = config or RunnerConfig()
        timeouts = config.timeouts

        ports: Optional[PortSet] = None
        validator: Optional[ValidatorHandle] = None
        rpc: Optional[RpcClient] = None
        try:
            ports = self._reserve_ports(config)
            self._transition(RunnerState.PORTS_RESERVED, ports)

            faucet_keypair = await self._start_faucet(ports, timeouts.faucet_ack)
            self._transition(RunnerState.AUX_SERVICE_RUNNING, ports)

            genesis = build_genesis(config, ports, faucet_keypair.pubkey())
            self._transition(RunnerState.GENESIS_BUILT, ports)

            validator, mint_keypair = await self._start_validator(genesis, timeouts.validator_start)
            self._transition(RunnerState.PRIMARY_SERVICE_STARTED, ports)

            rpc = self.client_factory(validator.rpc_url(), validator.rpc_pubsub_url(), config.commitment)
            await self._warm_up(rpc, mint_keypair, timeouts.warmup)
            self._transition(RunnerState.CLIENT_WARMED, ports)
        except BaseException as e:
            await self._abort(ports, validator, rpc, e)
            raise

        handle = RunnerHandle(
            registry=self.registry,
            ports=ports,
            genesis=genesis,
            validator=validator,
            mint_keypair=mint_keypair,
            rpc=rpc,
        )
        self._transition(RunnerState.READY, ports)
        bt.logging.info(
            {
                "runner_ready": {
                    "rpc_url": handle.rpc_url,
                    "pubsub_url": handle.pubsub_url,
                    "mint": str(mint_keypair.pubkey()),
                    "funded_accounts": len(config.funded_addresses),
                    "programs": len(config.programs),
                }
            }
        )
        return handle

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------
    def _reserve_ports(self, config: RunnerConfig) -> PortSet:
        if config.ports is not None:
            return self.registry.reserve(config.ports)
        return self.registry.allocate()

    async def _start_faucet(self, ports: PortSet, timeout: Optional[float]) -> Keypair:
        keypair = Keypair()
        ack = AckChannel()
        self._faucet_thread = threading.Thread(
            target=self._serve_faucet,
            args=(keypair, ack, ports.faucet),
            name=f"faucet-{ports.faucet}",
            daemon=True,
        )
        self._faucet_thread.start()

        # recv blocks a worker thread, not the event loop.
        try:
            message = await asyncio.to_thread(ack.recv, timeout)
        except asyncio.CancelledError:
            # Wake the executor thread still blocked in recv.
            ack.close()
            raise
        except ChannelClosed as e:
            raise AuxServiceStartupFailed(str(e)) from e
        except TimeoutError as e:
            raise RunnerTimeout("faucet_ack", timeout) from e

        if not message.ok:
            raise AuxServiceStartupFailed(message.error or "faucet reported an unspecified error")
        return keypair

    def _serve_faucet(self, keypair: Keypair, ack: AckChannel, port: int) -> None:
        try:
            self.faucet_service.run(keypair, ack, port)
        except Exception as e:
            if ack.closed:
                # The runner stopped waiting; nobody reads this outcome.
                bt.logging.debug({"faucet_ack_abandoned": {"port": port, "error": str(e)}})
                return
            bt.logging.error({"faucet_error": {"port": port, "error": str(e)}})
            if not ack.sent:
                ack.send(FaucetAck.failed(f"{type(e).__name__}: {e}"))
        finally:
            ack.close()

    async def _start_validator(
        self, genesis: GenesisDescriptor, timeout: Optional[float]
    ) -> tuple[ValidatorHandle, Keypair]:
        try:
            return await _bounded("validator_start", self.validator_service.start(genesis), timeout)
        except RunnerTimeout:
            raise
        except Exception as e:
            raise PrimaryServiceStartupFailed(str(e)) from e

    async def _warm_up(self, rpc: RpcClient, mint_keypair: Keypair, timeout: Optional[float]) -> None:
        # An unfunded fee payer gives unreliable fee and state behavior in later tests.
        try:
            signature = await _bounded(
                "warmup", rpc.request_funding(mint_keypair.pubkey(), WARMUP_LAMPORTS), timeout
            )
        except RunnerTimeout:
            raise
        except Exception as e:
            raise WarmupFailed(str(e)) from e
        bt.logging.debug({"runner_warmup": {"mint": str(mint_keypair.pubkey()), "signature": signature}})

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------
    async def _abort(
        self,
        ports: Optional[PortSet],
        validator: Optional[ValidatorHandle],
        rpc: Optional[RpcClient],
        error: BaseException,
    ) -> None:
        failed_in = self.state
        self.state = RunnerState.FAILED
        bt.logging.error(
            {
                "runner_failed": {
                    "after": failed_in.value,
                    "error_type": type(error).__name__,
                    "error": str(error),
                }
            }
        )
        log_event(f"runner failed after {failed_in.value}: {type(error).__name__}: {error}")

        if rpc is not None:
            try:
                await rpc.aclose()
            except Exception as e:
                bt.logging.warning({"runner_abort_client_close_error": str(e)})
        if validator is not None:
            try:
                await validator.stop()
            except Exception as e:
                bt.logging.warning({"runner_abort_validator_stop_error": str(e)})
        if ports is not None:
            self.registry.release(ports)

    def _transition(self, state: RunnerState, ports: PortSet) -> None:
        self.state = state
        bt.logging.debug({"runner_state": {"state": state.value, "rpc_port": ports.rpc}})
        log_event(f"rpc={ports.rpc} state={state.value}")


async def _bounded(stage: str, awaitable: Awaitable[T], timeout: Optional[float]) -> T:
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as e:
        raise RunnerTimeout(stage, timeout) from e


@asynccontextmanager
async def run_validator(config: Optional[RunnerConfig] = None, **runner_kwargs) -> AsyncIterator[RunnerHandle]:
    """Start a validator for the duration of an `async with` block.

    Example:
        async with run_validator(RunnerConfig(funded_addresses=[alice])) as runner:
            balance = await runner.rpc.get_balance(alice)
    """
    handle = await Runner(**runner_kwargs).run(config)
    try:
        yield handle
    finally:
        await handle.aclose()


__all__ = ["Runner", "RunnerState", "WARMUP_LAMPORTS", "run_validator"]
