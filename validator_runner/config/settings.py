from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIG_PATH_ENV = "VALIDATOR_RUNNER_CONFIG"
DEFAULT_CONFIG_RELPATH = Path("config") / "validator_runner.yaml"


class HarnessSettings(BaseSettings):
    """Process-level settings for launching validators.

    Resolution order: explicit kwargs, `VALIDATOR_RUNNER_*` environment
    variables, the `harness:` section of the YAML file, field defaults.
    """

    model_config = SettingsConfigDict(env_prefix="VALIDATOR_RUNNER_", extra="ignore")

    validator_binary: str = "solana-test-validator"
    ledger_root: Optional[Path] = None
    keep_ledger: bool = False
    extra_validator_args: List[str] = Field(default_factory=list)
    forward_validator_output: bool = False
    rpc_poll_interval: float = Field(default=0.25, gt=0)
    log_level: str = "INFO"
    events_log_dir: Optional[Path] = None
    events_retention_bytes: int = Field(default=10 * 1024 * 1024, gt=0)

    @model_validator(mode="before")
    @classmethod
    def _apply_yaml_overrides(cls, data: Any) -> Any:
        overrides = _load_harness_yaml_overrides()
        if not overrides:
            return data
        merged: Dict[str, Any] = dict(overrides)
        if isinstance(data, dict):
            merged.update(data)
        return merged


def _load_harness_yaml_overrides() -> Dict[str, Any]:
    candidates: list[Path] = []
    explicit = os.environ.get(CONFIG_PATH_ENV)
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())
    candidates.append(Path.cwd() / DEFAULT_CONFIG_RELPATH)

    for path in candidates:
        if not path.exists():
            continue
        try:
            with path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError):
            continue
        section = data.get("harness") if isinstance(data, dict) else None
        if isinstance(section, dict):
            return section
    return {}


def load_settings(**overrides: Any) -> HarnessSettings:
    return HarnessSettings(**overrides)


__all__ = ["CONFIG_PATH_ENV", "HarnessSettings", "load_settings"]
