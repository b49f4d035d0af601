from __future__ import annotations

import base64
from pathlib import Path
from typing import Annotated, Any, Dict, List, Optional

import yaml
from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)
from solders.pubkey import Pubkey

from validator_runner.ports.registry import PortSet
from validator_runner.shared.enums import Commitment
from validator_runner.shared.units import sol_to_lamports

SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
BPF_LOADER_UPGRADEABLE_ID = Pubkey.from_string("BPFLoaderUpgradeab1e11111111111111111111111")
DEFAULT_INITIAL_BALANCE = sol_to_lamports(5.0)
DEFAULT_WARP_SLOT = 1000
MINIMUM_SLOTS_PER_EPOCH = 32
DEFAULT_SLOTS_PER_EPOCH = 432_000


def _coerce_pubkey(value: Any) -> Any:
    if isinstance(value, str):
        return Pubkey.from_string(value)
    if isinstance(value, (bytes, bytearray)) and len(value) == 32:
        return Pubkey.from_bytes(bytes(value))
    return value


PubkeyField = Annotated[
    Pubkey,
    BeforeValidator(_coerce_pubkey),
    PlainSerializer(str, return_type=str),
]


class ProgramDescriptor(BaseModel):
    """A program deployed into genesis."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    program_id: PubkeyField
    binary_path: Path
    upgrade_authority: PubkeyField = SYSTEM_PROGRAM_ID
    loader_id: PubkeyField = BPF_LOADER_UPGRADEABLE_ID

    @property
    def is_upgradeable(self) -> bool:
        return self.loader_id == BPF_LOADER_UPGRADEABLE_ID


class AccountState(BaseModel):
    """Raw account contents seeded into genesis."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    lamports: int = Field(ge=0)
    data: bytes = b""
    owner: PubkeyField = SYSTEM_PROGRAM_ID
    executable: bool = False
    rent_epoch: int = Field(default=0, ge=0)

    @field_validator("data", mode="before")
    @classmethod
    def _decode_base64(cls, value: Any) -> Any:
        # YAML and JSON sources carry account data base64 encoded.
        if isinstance(value, str):
            return base64.b64decode(value)
        return value

    @classmethod
    def system(cls, lamports: int) -> "AccountState":
        return cls(lamports=lamports, owner=SYSTEM_PROGRAM_ID)

    def to_cli_json(self, address: Pubkey) -> dict[str, Any]:
        """Account in the `solana account --output json` layout."""
        return {
            "pubkey": str(address),
            "account": {
                "lamports": self.lamports,
                "data": [base64.b64encode(self.data).decode("ascii"), "base64"],
                "owner": str(self.owner),
                "executable": self.executable,
                "rentEpoch": self.rent_epoch,
                "space": len(self.data),
            },
        }


class EpochSchedule(BaseModel):
    """Clock schedule applied at genesis.

    Defaults match the cluster's standard schedule.
    """

    model_config = ConfigDict(frozen=True)

    slots_per_epoch: int = Field(default=DEFAULT_SLOTS_PER_EPOCH, ge=MINIMUM_SLOTS_PER_EPOCH)
    leader_schedule_slot_offset: int = Field(default=DEFAULT_SLOTS_PER_EPOCH, ge=0)
    warmup: bool = True

    @classmethod
    def without_warmup(cls, slots_per_epoch: int) -> "EpochSchedule":
        return cls(
            slots_per_epoch=slots_per_epoch,
            leader_schedule_slot_offset=slots_per_epoch,
            warmup=False,
        )


class StageTimeouts(BaseModel):
    """Opt-in bounds, in seconds, on the runner's suspension points.

    None (the default) waits indefinitely.
    """

    model_config = ConfigDict(frozen=True)

    faucet_ack: Optional[float] = Field(default=None, gt=0)
    validator_start: Optional[float] = Field(default=None, gt=0)
    warmup: Optional[float] = Field(default=None, gt=0)


class RunnerConfig(BaseModel):
    """Everything needed to provision one local validator.

    Example:
        config = RunnerConfig(
            funded_addresses=[user],
            initial_balance=sol_to_lamports(2.0),
        )
        async with run_validator(config) as runner:
            ...
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    # None allocates a random PortSet when the runner starts.
    ports: Optional[PortSet] = None
    programs: List[ProgramDescriptor] = Field(default_factory=list)
    funded_addresses: List[PubkeyField] = Field(default_factory=list)
    initial_balance: int = Field(default=DEFAULT_INITIAL_BALANCE, ge=0)
    commitment: Commitment = Commitment.PROCESSED
    seed_accounts: Dict[PubkeyField, AccountState] = Field(default_factory=dict)
    warp_slot: int = Field(default=DEFAULT_WARP_SLOT, ge=0)
    clock_schedule_override: EpochSchedule = Field(default_factory=EpochSchedule)
    timeouts: StageTimeouts = Field(default_factory=StageTimeouts)

    @model_validator(mode="after")
    def _check_invariants(self) -> "RunnerConfig":
        if self.funded_addresses and self.initial_balance <= 0:
            raise ValueError("initial_balance must be positive when funded_addresses is set")
        seen: set[Pubkey] = set()
        for program in self.programs:
            if program.program_id in seen:
                raise ValueError(f"duplicate program_id {program.program_id}")
            seen.add(program.program_id)
        return self

    async def run(self, **runner_kwargs: Any):
        """Start a validator with this configuration.

        Keyword arguments are forwarded to `Runner`.
        """
        from validator_runner.runner.lifecycle import Runner

        return await Runner(**runner_kwargs).run(self)

    @classmethod
    def from_yaml(cls, path: str | Path, section: str = "runner") -> "RunnerConfig":
        """Load the `runner:` section of a YAML file."""
        with Path(path).open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        body = data.get(section, data) if isinstance(data, dict) else {}
        if not isinstance(body, dict):
            raise ValueError(f"section '{section}' in {path} is not a mapping")
        return cls.model_validate(body)


__all__ = [
    "AccountState",
    "BPF_LOADER_UPGRADEABLE_ID",
    "DEFAULT_INITIAL_BALANCE",
    "DEFAULT_WARP_SLOT",
    "EpochSchedule",
    "ProgramDescriptor",
    "PubkeyField",
    "RunnerConfig",
    "StageTimeouts",
    "SYSTEM_PROGRAM_ID",
]
