"""Shared fixtures for validator_runner tests."""

from __future__ import annotations

import random

import pytest
from solders.keypair import Keypair

from validator_runner.devtools import (
    MockClientFactory,
    MockFaucetService,
    MockLedger,
    MockValidatorService,
    RecordingPortRegistry,
)
from validator_runner.ports.registry import PortRegistry
from validator_runner.runner.lifecycle import Runner


@pytest.fixture
def port_registry() -> PortRegistry:
    """Fresh registry whose OS probe always reports ports as free."""
    return PortRegistry(probe=lambda port: True, rng=random.Random(1234))


@pytest.fixture
def calls() -> list[str]:
    """Shared call log for ordering assertions."""
    return []


@pytest.fixture
def ledger() -> MockLedger:
    return MockLedger()


@pytest.fixture
def recording_registry(calls) -> RecordingPortRegistry:
    return RecordingPortRegistry(calls, rng=random.Random(99))


@pytest.fixture
def faucet_service(calls) -> MockFaucetService:
    return MockFaucetService(calls)


@pytest.fixture
def validator_service(calls, ledger) -> MockValidatorService:
    return MockValidatorService(calls, ledger)


@pytest.fixture
def client_factory(calls, ledger) -> MockClientFactory:
    return MockClientFactory(calls, ledger)


@pytest.fixture
def make_runner(recording_registry, faucet_service, validator_service, client_factory):
    """Build a Runner wired to the mock collaborators; override any of them by keyword."""

    def _make(**overrides) -> Runner:
        kwargs = {
            "registry": recording_registry,
            "faucet_service": faucet_service,
            "validator_service": validator_service,
            "client_factory": client_factory,
        }
        kwargs.update(overrides)
        return Runner(**kwargs)

    return _make


@pytest.fixture
def alice() -> Keypair:
    return Keypair()


@pytest.fixture
def bob() -> Keypair:
    return Keypair()
