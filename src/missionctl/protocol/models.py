"""Data model shared by the scheduler, the stores and the CLI."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import UTC, datetime
from typing import Any, Literal

TaskStatus = Literal["todo", "blocked", "in_progress", "review", "done", "failed"]
MissionStatus = Literal[
    "scheduled",
    "assigned",
    "in_progress",
    "pending_review",
    "revision",
    "done",
    "failed",
]
RunPhase = Literal["primary", "review"]
ReviewAction = Literal["approve", "revise", "redo"]
CircuitBreakerPolicy = Literal["continue", "stop_phase", "stop_mission"]
ConnectionQuality = Literal["good", "degraded", "lost"]

TASK_STATUSES: frozenset[str] = frozenset({"todo", "blocked", "in_progress", "review", "done", "failed"})
TERMINAL_TASK_STATUSES: frozenset[str] = frozenset({"done", "failed"})
RUNNING_TASK_STATUSES: frozenset[str] = frozenset({"in_progress", "review"})
PENDING_TASK_STATUSES: frozenset[str] = frozenset({"todo", "blocked"})
CLAIMABLE_MISSION_STATUSES: tuple[str, ...] = ("scheduled", "assigned", "revision")

# Fields that only live in the scheduler process; never trusted from a remote row.
RUNTIME_TASK_FIELDS: tuple[str, ...] = (
    "active_run_id",
    "active_phase",
    "active_thinking",
    "active_summary",
    "error_message",
)


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


def parse_iso_ms(value: str | None, fallback: float) -> float:
    """Parse an ISO timestamp to epoch milliseconds, or return *fallback*."""
    if not value:
        return fallback
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return fallback
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.timestamp() * 1000.0


def iso_from_ms(ms: float) -> str:
    return datetime.fromtimestamp(ms / 1000.0, UTC).isoformat()


def new_task_id(now_ms: float) -> str:
    return f"task-{int(now_ms)}-{uuid.uuid4().hex[:8]}"


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(x) for x in value if isinstance(x, str)]


def _opt_str(value: Any) -> str | None:
    return str(value) if isinstance(value, str) and value else None


@dataclass(slots=True, frozen=True)
class MediaRef:
    name: str
    type: str
    url: str

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> MediaRef:
        return cls(
            name=str(raw.get("name", "")),
            type=str(raw.get("type", "")),
            url=str(raw.get("url", "")),
        )


@dataclass(slots=True, frozen=True)
class ReviewHistoryEntry:
    """One reviewer verdict. Appended to a task's history, never mutated."""

    round: int
    action: ReviewAction
    summary: str
    confidence_score: float = 0.0
    specific_issues: tuple[str, ...] = ()
    new_instructions: str | None = None
    reviewer_agent_id: str = ""
    reviewed_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["specific_issues"] = list(self.specific_issues)
        return data

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ReviewHistoryEntry:
        action = str(raw.get("action", "revise"))
        if action not in {"approve", "revise", "redo"}:
            action = "revise"
        return cls(
            round=int(raw.get("round", 0)),
            action=action,  # type: ignore[arg-type]
            summary=str(raw.get("summary", "")),
            confidence_score=float(raw.get("confidence_score", 0.0) or 0.0),
            specific_issues=tuple(_str_list(raw.get("specific_issues"))),
            new_instructions=_opt_str(raw.get("new_instructions")),
            reviewer_agent_id=str(raw.get("reviewer_agent_id", "")),
            reviewed_at=str(raw.get("reviewed_at") or utc_now_iso()),
        )


@dataclass(slots=True)
class Task:
    """A unit of executable agent work."""

    id: str
    title: str
    description: str = ""
    status: TaskStatus = "todo"
    priority: str = "medium"
    domains: list[str] = field(default_factory=list)
    assignees: list[str] = field(default_factory=list)
    due_at: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    primary_agent_id: str = ""
    review_enabled: bool = False
    review_agent_id: str | None = None
    max_revisions: int = 0
    revision_round: int = 0
    parent_task_id: str | None = None
    root_task_id: str | None = None
    input_text: str = ""
    input_media: list[MediaRef] = field(default_factory=list)
    output_text: str | None = None
    review_notes: str | None = None
    review_history: list[ReviewHistoryEntry] = field(default_factory=list)
    dependency_task_ids: list[str] = field(default_factory=list)
    linked_revision_task_id: str | None = None
    active_run_id: str | None = None
    active_phase: RunPhase | None = None
    active_thinking: str | None = None
    active_summary: str | None = None
    error_message: str | None = None
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    @property
    def mission_id(self) -> str:
        return self.root_task_id or self.id

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_TASK_STATUSES

    @property
    def is_running(self) -> bool:
        return self.status in RUNNING_TASK_STATUSES

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["review_history"] = [entry.to_dict() for entry in self.review_history]
        return data

    def to_row(self) -> dict[str, Any]:
        """Persisted form: runtime-only fields are dropped."""
        data = self.to_dict()
        for name in RUNTIME_TASK_FIELDS:
            data.pop(name, None)
        return data

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Task:
        status = str(raw.get("status", "todo"))
        if status not in TASK_STATUSES:
            status = "todo"
        phase = raw.get("active_phase")
        return cls(
            id=str(raw.get("id", "")),
            title=str(raw.get("title", "")),
            description=str(raw.get("description") or ""),
            status=status,  # type: ignore[arg-type]
            priority=str(raw.get("priority") or "medium"),
            domains=_str_list(raw.get("domains")),
            assignees=_str_list(raw.get("assignees")),
            due_at=_opt_str(raw.get("due_at")),
            started_at=_opt_str(raw.get("started_at")),
            completed_at=_opt_str(raw.get("completed_at")),
            primary_agent_id=str(raw.get("primary_agent_id") or ""),
            review_enabled=bool(raw.get("review_enabled", False)),
            review_agent_id=_opt_str(raw.get("review_agent_id")),
            max_revisions=int(raw.get("max_revisions", 0) or 0),
            revision_round=int(raw.get("revision_round", 0) or 0),
            parent_task_id=_opt_str(raw.get("parent_task_id")),
            root_task_id=_opt_str(raw.get("root_task_id")),
            input_text=str(raw.get("input_text") or ""),
            input_media=[
                MediaRef.from_dict(m) for m in raw.get("input_media", []) or [] if isinstance(m, dict)
            ],
            output_text=_opt_str(raw.get("output_text")),
            review_notes=_opt_str(raw.get("review_notes")),
            review_history=[
                ReviewHistoryEntry.from_dict(e)
                for e in raw.get("review_history", []) or []
                if isinstance(e, dict)
            ],
            dependency_task_ids=_str_list(raw.get("dependency_task_ids")),
            linked_revision_task_id=_opt_str(raw.get("linked_revision_task_id")),
            active_run_id=_opt_str(raw.get("active_run_id")),
            active_phase=phase if phase in {"primary", "review"} else None,
            active_thinking=raw.get("active_thinking") if isinstance(raw.get("active_thinking"), str) else None,
            active_summary=_opt_str(raw.get("active_summary")),
            error_message=_opt_str(raw.get("error_message")),
            created_at=str(raw.get("created_at") or utc_now_iso()),
            updated_at=str(raw.get("updated_at") or utc_now_iso()),
        )


@dataclass(slots=True)
class Mission:
    """Aggregate of every task sharing a root id."""

    id: str
    title: str = ""
    status: MissionStatus = "scheduled"
    mission_phase: str = "tasks"
    mission_phase_status: str = "approved"
    session_key: str | None = None
    circuit_breaker: CircuitBreakerPolicy = "continue"
    max_phase_failures: int = 1
    mission_statement: str | None = None
    mission_plan: str | None = None
    scheduled_at: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    output_text: str | None = None
    review_notes: str | None = None
    revision_round: int = 0
    max_revisions: int = 0
    review_enabled: bool = False
    review_agent_id: str | None = None
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    @property
    def lifecycle_ready(self) -> bool:
        """Upstream approval gate: only the approved ``tasks`` phase may execute."""
        phase = self.mission_phase or "tasks"
        phase_status = self.mission_phase_status or "approved"
        return phase == "tasks" and phase_status == "approved"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Mission:
        policy = str(raw.get("circuit_breaker") or "continue")
        if policy not in {"continue", "stop_phase", "stop_mission"}:
            policy = "continue"
        status = str(raw.get("status") or "scheduled")
        return cls(
            id=str(raw.get("id", "")),
            title=str(raw.get("title", "")),
            status=status,  # type: ignore[arg-type]
            mission_phase=str(raw.get("mission_phase") or "tasks"),
            mission_phase_status=str(raw.get("mission_phase_status") or "approved"),
            session_key=_opt_str(raw.get("session_key")),
            circuit_breaker=policy,  # type: ignore[arg-type]
            max_phase_failures=max(int(raw.get("max_phase_failures", 1) or 1), 1),
            mission_statement=_opt_str(raw.get("mission_statement")),
            mission_plan=_opt_str(raw.get("mission_plan")),
            scheduled_at=_opt_str(raw.get("scheduled_at")),
            started_at=_opt_str(raw.get("started_at")),
            completed_at=_opt_str(raw.get("completed_at")),
            output_text=_opt_str(raw.get("output_text")),
            review_notes=_opt_str(raw.get("review_notes")),
            revision_round=int(raw.get("revision_round", 0) or 0),
            max_revisions=int(raw.get("max_revisions", 0) or 0),
            review_enabled=bool(raw.get("review_enabled", False)),
            review_agent_id=_opt_str(raw.get("review_agent_id")),
            created_at=str(raw.get("created_at") or utc_now_iso()),
            updated_at=str(raw.get("updated_at") or utc_now_iso()),
        )


@dataclass(slots=True)
class AgentGuardrails:
    """Per-agent narrowing of the level-based permission matrix."""

    allowed_domains: list[str] = field(default_factory=list)
    allowed_actions: list[str] = field(default_factory=list)
    denied_actions: list[str] = field(default_factory=list)
    max_concurrent_missions: int = 1
    max_daily_tasks: int = 5
    escalation_agent_id: str | None = None
    auto_review_threshold: float = 0.7

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> AgentGuardrails:
        if not isinstance(raw, dict):
            return cls()
        allowed = {f.name for f in fields(cls)}
        picked = {k: v for k, v in raw.items() if k in allowed}
        return cls(**picked)


@dataclass(slots=True)
class AgentProfile:
    agent_id: str
    name: str = ""
    level: int = 1
    guardrails: AgentGuardrails = field(default_factory=AgentGuardrails)

    @property
    def display_name(self) -> str:
        return self.name or self.agent_id

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> AgentProfile:
        level = int(raw.get("level", raw.get("current_level", 1)) or 1)
        return cls(
            agent_id=str(raw.get("agent_id", "")),
            name=str(raw.get("name") or ""),
            level=min(max(level, 1), 4),
            guardrails=AgentGuardrails.from_dict(raw.get("guardrails")),
        )


@dataclass(slots=True)
class RunCheckpoint:
    """Resume marker for a launched run, keyed by task id."""

    task_id: str
    phase: RunPhase
    agent_id: str
    prompt: str
    buffer: str = ""
    timestamp: float = 0.0
    connection_drops: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> RunCheckpoint:
        phase = raw.get("phase")
        return cls(
            task_id=str(raw.get("task_id", "")),
            phase=phase if phase in {"primary", "review"} else "primary",
            agent_id=str(raw.get("agent_id", "")),
            prompt=str(raw.get("prompt", "")),
            buffer=str(raw.get("buffer", "")),
            timestamp=float(raw.get("timestamp", 0.0) or 0.0),
            connection_drops=int(raw.get("connection_drops", 0) or 0),
        )


@dataclass(slots=True)
class ApprovalRequest:
    task_id: str
    mission_id: str
    agent_id: str
    agent_level: int
    reason: str
    requested_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
