"""Tests for ports/registry.py - PortSet layout and the reservation registry."""

from __future__ import annotations

import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from validator_runner.errors import PortAllocationExhausted, PortAlreadyReserved
from validator_runner.ports import registry as registry_module
from validator_runner.ports.registry import (
    GOSSIP_RANGE_WIDTH,
    MAX_ALLOCATION_ATTEMPTS,
    PortRegistry,
    PortSet,
    default_registry,
)


class TestPortSet:
    """Tests for the PortSet value type."""

    def test_defaults(self):
        """Default ports match the stock validator layout."""
        ports = PortSet()
        assert ports.rpc == 8899
        assert ports.pubsub == 8900
        assert ports.faucet == 9900
        assert ports.gossip_range == (8001, 8021)

    def test_from_base_layout(self):
        """from_base lays out rpc, pubsub, faucet then a 21-port gossip range."""
        ports = PortSet.from_base(20000)
        assert (ports.rpc, ports.pubsub, ports.faucet) == (20000, 20001, 20002)
        assert ports.gossip_range == (20003, 20023)
        assert len(ports.gossip_ports()) == GOSSIP_RANGE_WIDTH

    def test_all_ports_pairwise_distinct(self):
        """Every port in a PortSet appears once."""
        ports = PortSet.from_base(30000)
        all_ports = ports.all_ports()
        assert len(all_ports) == 3 + GOSSIP_RANGE_WIDTH
        assert len(set(all_ports)) == len(all_ports)
        assert list(ports) == all_ports

    def test_rejects_inverted_gossip_range(self):
        """gossip_range start after end is rejected."""
        with pytest.raises(ValueError, match="after end"):
            PortSet(gossip_range=(8021, 8001))

    def test_rejects_overlap(self):
        """rpc inside the gossip range is rejected."""
        with pytest.raises(ValueError, match="pairwise distinct"):
            PortSet(rpc=8005)

    def test_rejects_out_of_range_port(self):
        """Ports above 65535 are rejected."""
        with pytest.raises(ValueError, match="outside"):
            PortSet(faucet=70000)


class TestRegistryMembership:
    """Tests for mark/free/is_available."""

    def test_mark_and_free(self, port_registry):
        """A marked port is unavailable until freed."""
        port_registry.mark_used(4000)
        assert port_registry.is_reserved(4000)
        assert not port_registry.is_available(4000)
        port_registry.free(4000)
        assert port_registry.is_available(4000)

    def test_free_is_idempotent(self, port_registry):
        """Freeing twice, or freeing an unreserved port, changes nothing."""
        port_registry.mark_used(4000)
        port_registry.mark_used(4001)
        port_registry.free(4000)
        snapshot = port_registry.reserved_ports()
        port_registry.free(4000)
        port_registry.free(5555)
        assert port_registry.reserved_ports() == snapshot == frozenset({4001})

    def test_os_probe_consulted(self):
        """A port the OS reports busy is not available."""
        registry = PortRegistry(probe=lambda port: port != 4242)
        assert registry.is_available(4241)
        assert not registry.is_available(4242)


class TestRandomAllocation:
    """Tests for random_ports and allocate."""

    def test_allocation_shape(self, port_registry):
        """Allocated sets satisfy the layout invariants."""
        for _ in range(20):
            ports = port_registry.allocate()
            start, end = ports.gossip_range
            assert start < end
            assert end - start + 1 == GOSSIP_RANGE_WIDTH
            assert len(set(ports.all_ports())) == len(ports.all_ports())

    def test_allocate_marks_every_port(self, port_registry):
        """allocate reserves the whole set."""
        ports = port_registry.allocate()
        assert port_registry.reserved_ports() == frozenset(ports.all_ports())

    def test_random_ports_marks_nothing(self, port_registry):
        """random_ports only searches."""
        port_registry.random_ports()
        assert len(port_registry) == 0

    def test_exhaustion_after_budget(self):
        """No free port anywhere raises after the fixed attempt budget."""
        probed = []

        def probe(port):
            probed.append(port)
            return False

        registry = PortRegistry(probe=probe, rng=random.Random(7))
        assert registry.try_random_ports() is None
        # The first port of each candidate is rejected, so one probe per attempt.
        assert len(probed) == MAX_ALLOCATION_ATTEMPTS
        with pytest.raises(PortAllocationExhausted):
            registry.random_ports()

    def test_skips_reserved_candidates(self):
        """A candidate overlapping reserved ports is skipped."""
        rng = random.Random()
        bases = iter([5000, 5000, 9000])
        rng.randrange = lambda a, b: next(bases)
        registry = PortRegistry(probe=lambda port: True, rng=rng)
        first = registry.allocate()
        second = registry.allocate()
        assert first.rpc == 5000
        assert second.rpc == 9000

    def test_concurrent_allocations_disjoint(self):
        """Parallel allocations never hand out the same port twice."""
        registry = PortRegistry(probe=lambda port: True)
        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(lambda _: registry.allocate(), range(64)))

        seen: set[int] = set()
        for ports in results:
            for port in ports:
                assert port not in seen
                seen.add(port)

    def test_overlapping_candidates_race(self):
        """Two threads probing overlapping candidates at once get disjoint sets."""
        bases = iter([20000, 20010, 30000, 40000])
        bases_lock = threading.Lock()

        def next_base(a, b):
            with bases_lock:
                return next(bases)

        rng = random.Random()
        rng.randrange = next_base
        start = threading.Barrier(2)

        def slow_probe(port):
            time.sleep(0.005)
            return True

        registry = PortRegistry(probe=slow_probe, rng=rng)

        def attempt(_):
            start.wait()
            return registry.allocate()

        with ThreadPoolExecutor(max_workers=2) as pool:
            first, second = pool.map(attempt, range(2))

        assert set(first.all_ports()).isdisjoint(second.all_ports())
        assert {first.rpc, second.rpc} & {20000, 20010}
        assert registry.reserved_ports() == frozenset(first.all_ports()) | frozenset(second.all_ports())


class TestReserve:
    """Tests for explicit PortSet reservation."""

    def test_reserve_marks_ports(self, port_registry):
        """An explicit set is reserved whole."""
        ports = PortSet(rpc=18899, pubsub=18900, faucet=19900, gossip_range=(18001, 18021))
        assert port_registry.reserve(ports) == ports
        assert port_registry.reserved_ports() == frozenset(ports.all_ports())

    def test_second_reserve_fails(self, port_registry):
        """Reserving an overlapping set fails and names the taken ports."""
        ports = PortSet(rpc=18899, pubsub=18900, faucet=19900, gossip_range=(18001, 18021))
        port_registry.reserve(ports)
        with pytest.raises(PortAlreadyReserved) as exc_info:
            port_registry.reserve(ports)
        assert exc_info.value.ports == sorted(ports.all_ports())
        assert "another runner" in str(exc_info.value)

    def test_reserve_is_all_or_nothing(self, port_registry):
        """A partial overlap reserves none of the new ports."""
        port_registry.mark_used(18005)
        ports = PortSet(rpc=18899, pubsub=18900, faucet=19900, gossip_range=(18001, 18021))
        with pytest.raises(PortAlreadyReserved) as exc_info:
            port_registry.reserve(ports)
        assert exc_info.value.ports == [18005]
        assert port_registry.reserved_ports() == frozenset({18005})

    def test_reserve_rejects_os_busy_port(self):
        """A port bound by another process fails with a distinct reason."""
        registry = PortRegistry(probe=lambda port: port != 19900)
        ports = PortSet(rpc=18899, pubsub=18900, faucet=19900, gossip_range=(18001, 18021))
        with pytest.raises(PortAlreadyReserved, match="another process") as exc_info:
            registry.reserve(ports)
        assert exc_info.value.ports == [19900]
        assert len(registry) == 0

    def test_concurrent_reserve_single_winner(self):
        """Of many threads reserving the same set, exactly one wins."""
        registry = PortRegistry(probe=lambda port: True)
        ports = PortSet(rpc=18899, pubsub=18900, faucet=19900, gossip_range=(18001, 18021))
        barrier = threading.Barrier(8)

        def attempt(_):
            barrier.wait()
            try:
                registry.reserve(ports)
                return True
            except PortAlreadyReserved:
                return False

        with ThreadPoolExecutor(max_workers=8) as pool:
            outcomes = list(pool.map(attempt, range(8)))
        assert outcomes.count(True) == 1

    def test_release_frees_set(self, port_registry):
        """release frees every port and is idempotent."""
        ports = port_registry.allocate()
        port_registry.release(ports)
        port_registry.release(ports)
        assert len(port_registry) == 0


class TestDefaultRegistry:
    """Tests for the lazily created process-wide registry."""

    def test_returns_same_instance(self, monkeypatch):
        """default_registry is created once."""
        monkeypatch.setattr(registry_module, "_default_registry", None)
        first = default_registry()
        assert default_registry() is first
        assert isinstance(first, PortRegistry)
