from .handle import RunnerHandle
from .lifecycle import WARMUP_LAMPORTS, Runner, RunnerState, run_validator

__all__ = ["Runner", "RunnerHandle", "RunnerState", "WARMUP_LAMPORTS", "run_validator"]
