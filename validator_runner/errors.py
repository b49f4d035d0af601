"""Errors raised while provisioning a local validator.

Each stage of `Runner.run()` that talks to a collaborator has its own
`RunnerError` subclass; the collaborator's exception is kept as `__cause__`.
"""

from __future__ import annotations

from typing import Iterable, Optional


class RunnerError(Exception):
    """Base class for runner failures."""


class PortAllocationExhausted(RunnerError):
    """No free PortSet was found within the allocator's retry budget."""


class PortAlreadyReserved(RunnerError):
    """An explicit PortSet overlaps ports that are already in use."""

    def __init__(self, ports: Iterable[int], reason: str = "reserved by another runner"):
        self.ports = sorted(set(ports))
        self.reason = reason
        shown = ", ".join(str(p) for p in self.ports[:8])
        if len(self.ports) > 8:
            shown += ", ..."
        super().__init__(f"ports [{shown}] are {reason}")


class AuxServiceStartupFailed(RunnerError):
    """The faucet failed to bind or closed its ack channel without a message."""


class PrimaryServiceStartupFailed(RunnerError):
    """The validator service raised while starting."""


class WarmupFailed(RunnerError):
    """The post-start funding probe did not confirm."""


class RunnerTimeout(RunnerError):
    """An opt-in stage timeout elapsed."""

    def __init__(self, stage: str, timeout: float):
        self.stage = stage
        self.timeout = timeout
        super().__init__(f"stage '{stage}' did not finish within {timeout:g}s")


class RpcError(Exception):
    """JSON-RPC level failure reported by the validator."""

    def __init__(self, message: str, code: Optional[int] = None, data: object = None):
        self.code = code
        self.data = data
        prefix = f"[{code}] " if code is not None else ""
        super().__init__(f"{prefix}{message}")


__all__ = [
    "AuxServiceStartupFailed",
    "PortAllocationExhausted",
    "PortAlreadyReserved",
    "PrimaryServiceStartupFailed",
    "RpcError",
    "RunnerError",
    "RunnerTimeout",
    "WarmupFailed",
]
