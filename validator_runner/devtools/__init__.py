"""Developer and test utilities for validator_runner."""

from .mock_services import (
    MockClientFactory,
    MockFaucetService,
    MockLedger,
    MockRpcClient,
    MockValidatorHandle,
    MockValidatorService,
    RecordingPortRegistry,
)

__all__ = [
    "MockClientFactory",
    "MockFaucetService",
    "MockLedger",
    "MockRpcClient",
    "MockValidatorHandle",
    "MockValidatorService",
    "RecordingPortRegistry",
]
