"""In-memory stand-ins for the services a Runner sequences.

Every mock appends a short label to a shared `calls` list so tests can assert
on the exact order in which the runner touched its collaborators:

    calls = []
    runner = Runner(
        registry=RecordingPortRegistry(calls),
        faucet_service=MockFaucetService(calls),
        validator_service=MockValidatorService(calls, ledger),
        client_factory=MockClientFactory(calls, ledger),
    )
"""

from __future__ import annotations

import asyncio
import itertools
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from validator_runner.errors import RpcError
from validator_runner.genesis.descriptor import GenesisDescriptor
from validator_runner.ports.registry import PortRegistry, PortSet
from validator_runner.services.ack import AckChannel, FaucetAck
from validator_runner.shared.enums import Commitment

RESERVE_PORTS = "reserve ports"
START_FAUCET = "start faucet"
START_VALIDATOR = "start validator"
CONSTRUCT_CLIENT = "construct client"
WARM_UP = "warm up"
STOP_VALIDATOR = "stop validator"
CLOSE_CLIENT = "close client"


@dataclass
class MockLedger:
    """Balances shared between a mock validator and its clients."""

    balances: Dict[Pubkey, int] = field(default_factory=dict)
    genesis: Optional[GenesisDescriptor] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def load_genesis(self, genesis: GenesisDescriptor) -> None:
        with self._lock:
            self.genesis = genesis
            self.balances = {address: account.lamports for address, account in genesis.accounts.items()}

    def balance(self, address: Pubkey) -> int:
        with self._lock:
            return self.balances.get(address, 0)

    def credit(self, address: Pubkey, lamports: int) -> None:
        with self._lock:
            self.balances[address] = self.balances.get(address, 0) + lamports


class RecordingPortRegistry(PortRegistry):
    """PortRegistry that records reservations; accepts every port by default."""

    def __init__(self, calls: List[str], probe=None, rng=None):
        super().__init__(probe=probe or (lambda port: True), rng=rng)
        self.calls = calls

    def allocate(self) -> PortSet:
        self.calls.append(RESERVE_PORTS)
        return super().allocate()

    def reserve(self, ports: PortSet) -> PortSet:
        self.calls.append(RESERVE_PORTS)
        return super().reserve(ports)


class MockFaucetService:
    """Faucet double.

    Modes:
    - default: acknowledge success
    - `fail_with`: acknowledge an error with that reason
    - `raise_with`: raise from `run` before acknowledging
    - `close_without_ack`: return without sending anything
    - `hang`: block until `release_hang()` is called, then behave as above
    """

    def __init__(
        self,
        calls: Optional[List[str]] = None,
        *,
        fail_with: Optional[str] = None,
        raise_with: Optional[BaseException] = None,
        close_without_ack: bool = False,
        hang: bool = False,
    ):
        self.calls = calls if calls is not None else []
        self.fail_with = fail_with
        self.raise_with = raise_with
        self.close_without_ack = close_without_ack
        self.hang = hang
        self.keypair: Optional[Keypair] = None
        self.port: Optional[int] = None
        self.thread_name: Optional[str] = None
        self.ack: Optional[AckChannel] = None
        self.started = threading.Event()
        self._unblock = threading.Event()

    def release_hang(self) -> None:
        self._unblock.set()

    def run(self, keypair: Keypair, ack: AckChannel, port: int) -> None:
        self.calls.append(START_FAUCET)
        self.keypair = keypair
        self.port = port
        self.thread_name = threading.current_thread().name
        self.ack = ack
        self.started.set()
        if self.hang:
            self._unblock.wait()
        if self.raise_with is not None:
            raise self.raise_with
        if self.close_without_ack:
            return
        if self.fail_with is not None:
            ack.send(FaucetAck.failed(self.fail_with))
            return
        ack.send(FaucetAck.bound())


class MockValidatorHandle:
    def __init__(self, calls: List[str], rpc_port: int, pubsub_port: int, *, stop_error: Optional[Exception] = None):
        self.calls = calls
        self.rpc_port = rpc_port
        self.pubsub_port = pubsub_port
        self.stop_error = stop_error
        self.stopped = 0

    def rpc_url(self) -> str:
        return f"http://127.0.0.1:{self.rpc_port}"

    def rpc_pubsub_url(self) -> str:
        return f"ws://127.0.0.1:{self.pubsub_port}"

    async def stop(self) -> None:
        self.calls.append(STOP_VALIDATOR)
        self.stopped += 1
        if self.stop_error is not None:
            raise self.stop_error


class MockValidatorService:
    """Validator double that loads genesis into a `MockLedger`."""

    def __init__(
        self,
        calls: Optional[List[str]] = None,
        ledger: Optional[MockLedger] = None,
        *,
        fail_with: Optional[Exception] = None,
        start_delay: float = 0.0,
        stop_error: Optional[Exception] = None,
    ):
        self.calls = calls if calls is not None else []
        self.ledger = ledger or MockLedger()
        self.fail_with = fail_with
        self.start_delay = start_delay
        self.stop_error = stop_error
        self.handles: List[MockValidatorHandle] = []
        self.mint_keypair: Optional[Keypair] = None

    async def start(self, genesis: GenesisDescriptor) -> Tuple[MockValidatorHandle, Keypair]:
        self.calls.append(START_VALIDATOR)
        if self.start_delay:
            await asyncio.sleep(self.start_delay)
        if self.fail_with is not None:
            raise self.fail_with
        self.ledger.load_genesis(genesis)
        handle = MockValidatorHandle(
            self.calls, genesis.rpc_port, genesis.pubsub_port, stop_error=self.stop_error
        )
        self.handles.append(handle)
        self.mint_keypair = Keypair()
        return handle, self.mint_keypair


class MockRpcClient:
    def __init__(
        self,
        calls: List[str],
        ledger: MockLedger,
        rpc_url: str,
        pubsub_url: str,
        commitment: Commitment,
        *,
        fail_with: Optional[Exception] = None,
        funding_delay: float = 0.0,
    ):
        self.calls = calls
        self.ledger = ledger
        self.rpc_url = rpc_url
        self.pubsub_url = pubsub_url
        self.commitment = commitment
        self.fail_with = fail_with
        self.funding_delay = funding_delay
        self.fundings: List[Tuple[Pubkey, int]] = []
        self.closed = False
        self._signatures = itertools.count(1)

    async def request_funding(self, address: Pubkey, lamports: int) -> str:
        self.calls.append(WARM_UP)
        if self.funding_delay:
            await asyncio.sleep(self.funding_delay)
        if self.fail_with is not None:
            raise self.fail_with
        if lamports <= 0:
            raise RpcError("airdrop amount must be positive", code=-32602)
        self.ledger.credit(address, lamports)
        self.fundings.append((address, lamports))
        return f"mock-signature-{next(self._signatures)}-{int(time.time() * 1000)}"

    async def get_balance(self, address: Pubkey) -> int:
        return self.ledger.balance(address)

    async def get_health(self) -> str:
        return "ok"

    async def aclose(self) -> None:
        self.calls.append(CLOSE_CLIENT)
        self.closed = True


class MockClientFactory:
    """Client factory double; the built clients are kept on `clients`."""

    def __init__(
        self,
        calls: Optional[List[str]] = None,
        ledger: Optional[MockLedger] = None,
        *,
        fail_with: Optional[Exception] = None,
        funding_delay: float = 0.0,
    ):
        self.calls = calls if calls is not None else []
        self.ledger = ledger or MockLedger()
        self.fail_with = fail_with
        self.funding_delay = funding_delay
        self.clients: List[MockRpcClient] = []

    def __call__(self, rpc_url: str, pubsub_url: str, commitment: Commitment) -> MockRpcClient:
        self.calls.append(CONSTRUCT_CLIENT)
        client = MockRpcClient(
            self.calls,
            self.ledger,
            rpc_url,
            pubsub_url,
            commitment,
            fail_with=self.fail_with,
            funding_delay=self.funding_delay,
        )
        self.clients.append(client)
        return client


__all__ = [
    "CLOSE_CLIENT",
    "CONSTRUCT_CLIENT",
    "MockClientFactory",
    "MockFaucetService",
    "MockLedger",
    "MockRpcClient",
    "MockValidatorHandle",
    "MockValidatorService",
    "RESERVE_PORTS",
    "RecordingPortRegistry",
    "START_FAUCET",
    "START_VALIDATOR",
    "STOP_VALIDATOR",
    "WARM_UP",
]
