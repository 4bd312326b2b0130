"""Configuration schema for missionctl YAML files."""

from __future__ import annotations

from dataclasses import dataclass, field

DEPENDENCY_POLICIES = ("done_only", "terminal")


@dataclass(slots=True)
class SchedulerConfig:
    check_interval_seconds: float = 60.0
    max_active_runs: int = 1
    thinking_buffer_limit: int = 8000
    run_timeout_seconds: float = 120.0
    claim_prefix: str = "scheduler"
    # "done_only": a failed dependency keeps dependents blocked.
    # "terminal": done or failed both unblock.
    dependency_policy: str = "done_only"


@dataclass(slots=True)
class RecoveryConfig:
    stale_run_grace_seconds: float = 120.0
    connection_grace_seconds: float = 300.0
    grace_check_interval_seconds: float = 30.0
    max_connection_drops: int = 3


@dataclass(slots=True)
class GatewayConfig:
    url: str = "http://127.0.0.1:18789"
    token: str = ""
    timeout_seconds: float = 30.0
    reconnect_delay_seconds: float = 3.0
    lost_after_failures: int = 3


@dataclass(slots=True)
class StoreConfig:
    path: str = ".missionctl/store.json"
    activity_log: str = ".missionctl/activity.jsonl"
    checkpoint_path: str = ".missionctl/checkpoints.json"  # "" = memory only
    activity_history: int = 1000  # events kept in memory


@dataclass(slots=True)
class ProofConfig:
    enabled: bool = True
    repo_root: str = "."
    verify_evidence: bool = False
    force: bool = False  # every task owes a proof, regardless of wording
    mtime_skew_seconds: float = 5.0


@dataclass(slots=True)
class LoggingConfig:
    debug: bool = False
    json_output: bool = False


@dataclass(slots=True)
class MissionCtlConfig:
    version: int = 1
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    proof: ProofConfig = field(default_factory=ProofConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
