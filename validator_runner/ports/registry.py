"""Process-local registry of reserved validator ports.

Parallel test runs race for local ports. The registry tracks every port a
live runner has reserved so that a new allocation never hands out a port that
is still owned by another runner in this process. Availability is the
combination of an OS-level bind probe and registry membership.

The lock only guards registry membership (test, insert, remove). The OS probe
runs outside it, so both `allocate()` and `reserve()` re-check membership and
insert in a single critical section; two runners in this process never share
a port. Another process binding a port after the probe is not detected here.
"""

from __future__ import annotations

import random
import threading
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Optional

import bittensor as bt

from validator_runner.ports.probe import is_port_free
from validator_runner.errors import PortAllocationExhausted, PortAlreadyReserved

MIN_BASE_PORT = 1000
MAX_BASE_PORT = 65535 - 25
GOSSIP_RANGE_OFFSET = 3
GOSSIP_RANGE_WIDTH = 21
MAX_ALLOCATION_ATTEMPTS = 100


@dataclass(frozen=True)
class PortSet:
    """Ports used by one validator instance.

    `gossip_range` is inclusive on both ends.
    """

    rpc: int = 8899
    pubsub: int = 8900
    faucet: int = 9900
    gossip_range: tuple[int, int] = (8001, 8021)

    def __post_init__(self) -> None:
        start, end = self.gossip_range
        if start > end:
            raise ValueError(f"gossip_range start {start} is after end {end}")
        ports = self.all_ports()
        if len(set(ports)) != len(ports):
            raise ValueError(f"PortSet ports must be pairwise distinct: {self}")
        for port in ports:
            if not 0 < port <= 65535:
                raise ValueError(f"port {port} is outside 1..65535")

    @classmethod
    def from_base(cls, base: int) -> "PortSet":
        start = base + GOSSIP_RANGE_OFFSET
        return cls(
            rpc=base,
            pubsub=base + 1,
            faucet=base + 2,
            gossip_range=(start, start + GOSSIP_RANGE_WIDTH - 1),
        )

    def gossip_ports(self) -> range:
        start, end = self.gossip_range
        return range(start, end + 1)

    def all_ports(self) -> list[int]:
        return [self.rpc, self.pubsub, self.faucet, *self.gossip_ports()]

    def __iter__(self) -> Iterator[int]:
        return iter(self.all_ports())


class PortRegistry:
    """Thread-safe set of ports reserved by live runners.

    Args:
        probe: OS-level availability check, `is_port_free` by default.
            Tests inject a deterministic probe.
        rng: random source for base-port selection.
    """

    def __init__(
        self,
        probe: Callable[[int], bool] = is_port_free,
        rng: Optional[random.Random] = None,
    ):
        self._probe = probe
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._used: set[int] = set()

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------
    def is_reserved(self, port: int) -> bool:
        with self._lock:
            return port in self._used

    def is_available(self, port: int) -> bool:
        """Free at the OS level and not reserved by any runner."""
        if self.is_reserved(port):
            return False
        return self._probe(port)

    def mark_used(self, port: int) -> None:
        with self._lock:
            self._used.add(port)

    def free(self, port: int) -> None:
        with self._lock:
            self._used.discard(port)

    def reserved_ports(self) -> frozenset[int]:
        with self._lock:
            return frozenset(self._used)

    def __len__(self) -> int:
        with self._lock:
            return len(self._used)

    # ------------------------------------------------------------------
    # Port sets
    # ------------------------------------------------------------------
    def try_random_ports(self) -> Optional[PortSet]:
        """Search for a free PortSet around a random base port.

        Returns None once MAX_ALLOCATION_ATTEMPTS bases were rejected.
        Nothing is marked; callers reserve the returned set.
        """
        for _ in range(MAX_ALLOCATION_ATTEMPTS):
            base = self._rng.randrange(MIN_BASE_PORT, MAX_BASE_PORT)
            candidate = PortSet.from_base(base)
            if all(self.is_available(port) for port in candidate):
                return candidate
        return None

    def random_ports(self) -> PortSet:
        ports = self.try_random_ports()
        if ports is None:
            raise PortAllocationExhausted(
                f"no free port set found after {MAX_ALLOCATION_ATTEMPTS} attempts"
            )
        return ports

    def allocate(self) -> PortSet:
        """Find a random PortSet and mark all of its ports used.

        The candidate is re-checked and marked in one critical section; a
        candidate another thread claimed in the meantime is skipped and
        counts against the attempt budget.
        """
        for _ in range(MAX_ALLOCATION_ATTEMPTS):
            base = self._rng.randrange(MIN_BASE_PORT, MAX_BASE_PORT)
            candidate = PortSet.from_base(base)
            if not all(self.is_available(port) for port in candidate):
                continue
            with self._lock:
                if self._used.isdisjoint(candidate):
                    self._used.update(candidate)
                    return candidate
            bt.logging.debug({"port_allocation_collision": {"base": base}})
        raise PortAllocationExhausted(
            f"no free port set found after {MAX_ALLOCATION_ATTEMPTS} attempts"
        )

    def reserve(self, ports: PortSet) -> PortSet:
        """Reserve an explicit PortSet, all-or-nothing.

        Raises:
            PortAlreadyReserved: a port is held by another runner or
                cannot be bound at the OS level.
        """
        self._raise_if_reserved(ports)

        busy = [port for port in ports if not self._probe(port)]
        if busy:
            raise PortAlreadyReserved(busy, reason="in use by another process")

        with self._lock:
            self._raise_if_reserved_locked(ports)
            self._used.update(ports)
        return ports

    def _raise_if_reserved(self, ports: PortSet) -> None:
        with self._lock:
            self._raise_if_reserved_locked(ports)

    def _raise_if_reserved_locked(self, ports: PortSet) -> None:
        taken = [port for port in ports if port in self._used]
        if taken:
            raise PortAlreadyReserved(taken, reason="reserved by another runner")

    def release(self, ports: Iterable[int]) -> None:
        with self._lock:
            self._used.difference_update(ports)


_default_registry: Optional[PortRegistry] = None
_default_registry_lock = threading.Lock()


def default_registry() -> PortRegistry:
    """Lazily created process-wide registry for callers that do not own one."""
    global _default_registry
    with _default_registry_lock:
        if _default_registry is None:
            _default_registry = PortRegistry()
            bt.logging.debug({"port_registry": "default_created"})
        return _default_registry


__all__ = [
    "GOSSIP_RANGE_WIDTH",
    "MAX_ALLOCATION_ATTEMPTS",
    "PortRegistry",
    "PortSet",
    "default_registry",
]
