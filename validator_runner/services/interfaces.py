"""Contracts for the services a runner sequences.

The runner depends only on these protocols. The default implementations
launch `solana-test-validator`; `validator_runner.devtools` provides
in-memory stand-ins.
"""

from __future__ import annotations

from typing import Protocol, Tuple, runtime_checkable

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from validator_runner.genesis.descriptor import GenesisDescriptor
from validator_runner.services.ack import AckChannel
from validator_runner.shared.enums import Commitment


@runtime_checkable
class FaucetService(Protocol):
    """Auxiliary funding service.

    `run` executes on a dedicated background thread and must send exactly
    one acknowledgment on `ack` once bound (or failed).
    """

    def run(self, keypair: Keypair, ack: AckChannel, port: int) -> None:
        ...


@runtime_checkable
class ValidatorHandle(Protocol):
    def rpc_url(self) -> str:
        ...

    def rpc_pubsub_url(self) -> str:
        ...

    async def stop(self) -> None:
        ...


@runtime_checkable
class ValidatorService(Protocol):
    async def start(self, genesis: GenesisDescriptor) -> Tuple[ValidatorHandle, Keypair]:
        """Start a validator from `genesis`, returning once it serves RPC."""
        ...


@runtime_checkable
class RpcClient(Protocol):
    async def request_funding(self, address: Pubkey, lamports: int) -> str:
        """Fund `address` and return the confirmed transaction signature."""
        ...

    async def get_balance(self, address: Pubkey) -> int:
        ...

    async def get_health(self) -> str:
        ...

    async def aclose(self) -> None:
        ...


class ClientFactory(Protocol):
    def __call__(self, rpc_url: str, pubsub_url: str, commitment: Commitment) -> RpcClient:
        ...


__all__ = [
    "ClientFactory",
    "FaucetService",
    "RpcClient",
    "ValidatorHandle",
    "ValidatorService",
]
