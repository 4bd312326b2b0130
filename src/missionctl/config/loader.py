"""YAML config loader for missionctl."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

from missionctl.config.schema import (
    DEPENDENCY_POLICIES,
    GatewayConfig,
    LoggingConfig,
    MissionCtlConfig,
    ProofConfig,
    RecoveryConfig,
    SchedulerConfig,
    StoreConfig,
)
from missionctl.errors import ConfigurationError

ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "MISSIONCTL_GATEWAY_URL": ("gateway", "url"),
    "MISSIONCTL_GATEWAY_TOKEN": ("gateway", "token"),
    "MISSIONCTL_STORE_PATH": ("store", "path"),
}


def load_config(path: str | Path | None = None, env: dict[str, str] | None = None) -> MissionCtlConfig:
    """Load a config file (missing file means defaults), apply env overrides, validate."""
    raw: Any = {}
    if path is not None:
        p = Path(path)
        if p.exists():
            try:
                raw = yaml.safe_load(p.read_text(encoding="utf-8"))
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {p}: {e}") from e
    if not isinstance(raw, dict):
        raw = {}

    config = MissionCtlConfig(
        version=int(raw.get("version", 1)),
        scheduler=SchedulerConfig(**_pick(_section(raw, "scheduler"), SchedulerConfig)),
        recovery=RecoveryConfig(**_pick(_section(raw, "recovery"), RecoveryConfig)),
        gateway=GatewayConfig(**_pick(_section(raw, "gateway"), GatewayConfig)),
        store=StoreConfig(**_pick(_section(raw, "store"), StoreConfig)),
        proof=ProofConfig(**_pick(_section(raw, "proof"), ProofConfig)),
        logging=LoggingConfig(**_pick(_section(raw, "logging"), LoggingConfig)),
    )
    _apply_env(config, os.environ if env is None else env)
    validate_config(config)
    return config


def validate_config(config: MissionCtlConfig) -> None:
    sched = config.scheduler
    if sched.dependency_policy not in DEPENDENCY_POLICIES:
        raise ConfigurationError(
            f"scheduler.dependency_policy must be one of {', '.join(DEPENDENCY_POLICIES)}; "
            f"got {sched.dependency_policy!r}"
        )
    if sched.max_active_runs < 1:
        raise ConfigurationError("scheduler.max_active_runs must be >= 1")
    if sched.thinking_buffer_limit < 1:
        raise ConfigurationError("scheduler.thinking_buffer_limit must be >= 1")
    if sched.run_timeout_seconds <= 0 or sched.check_interval_seconds <= 0:
        raise ConfigurationError("scheduler intervals must be positive")
    if not sched.claim_prefix or ":" in sched.claim_prefix:
        raise ConfigurationError("scheduler.claim_prefix must be non-empty and contain no ':'")
    if config.recovery.max_connection_drops < 1:
        raise ConfigurationError("recovery.max_connection_drops must be >= 1")
    if config.store.activity_history < 1:
        raise ConfigurationError("store.activity_history must be >= 1")


def _apply_env(config: MissionCtlConfig, env: Any) -> None:
    for var, (section, name) in ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            setattr(getattr(config, section), name, value)


def _section(raw: dict[str, Any], key: str) -> dict[str, Any]:
    value = raw.get(key, {})
    return value if isinstance(value, dict) else {}


def _pick(raw: dict[str, Any], model_type: type[Any]) -> dict[str, Any]:
    allowed = set(model_type.__dataclass_fields__.keys())
    return {k: v for k, v in raw.items() if k in allowed}
