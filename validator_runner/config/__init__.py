from .models import (
    AccountState,
    BPF_LOADER_UPGRADEABLE_ID,
    DEFAULT_INITIAL_BALANCE,
    DEFAULT_WARP_SLOT,
    EpochSchedule,
    ProgramDescriptor,
    RunnerConfig,
    StageTimeouts,
    SYSTEM_PROGRAM_ID,
)
from .settings import HarnessSettings, load_settings

__all__ = [
    "AccountState",
    "BPF_LOADER_UPGRADEABLE_ID",
    "DEFAULT_INITIAL_BALANCE",
    "DEFAULT_WARP_SLOT",
    "EpochSchedule",
    "HarnessSettings",
    "ProgramDescriptor",
    "RunnerConfig",
    "StageTimeouts",
    "SYSTEM_PROGRAM_ID",
    "load_settings",
]
