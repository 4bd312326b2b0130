"""Backing-store contract shared by the in-memory and JSON file stores."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Protocol, runtime_checkable

from missionctl.protocol.models import (
    CLAIMABLE_MISSION_STATUSES,
    AgentProfile,
    ApprovalRequest,
    Mission,
    Task,
)

logger = logging.getLogger(__name__)

Table = Literal["tasks", "missions", "agents"]
ChangeKind = Literal["insert", "update"]

# Row field recording which process wrote last; lets a subscriber ignore its own echoes.
WRITER_FIELD = "last_writer"


@dataclass(slots=True)
class ChangeEvent:
    table: Table
    kind: ChangeKind
    row: dict[str, Any] = field(default_factory=dict)
    origin: str = ""


ChangeHandler = Callable[[ChangeEvent], None]


@runtime_checkable
class MissionStore(Protocol):
    """Relational-style store the engine reads at start-up and patches afterwards."""

    async def list_tasks(self) -> list[Task]: ...

    async def list_missions(self) -> list[Mission]: ...

    async def list_agents(self) -> list[AgentProfile]: ...

    async def get_task(self, task_id: str) -> Task | None: ...

    async def insert_task(self, task: Task, *, origin: str = "") -> Task: ...

    async def update_task(self, task_id: str, patch: dict[str, Any], *, origin: str = "") -> Task | None: ...

    async def upsert_mission(self, mission: Mission, *, origin: str = "") -> Mission: ...

    async def update_mission(
        self, mission_id: str, patch: dict[str, Any], *, origin: str = ""
    ) -> Mission | None: ...

    async def claim_mission(
        self, mission_id: str, *, session_key: str, started_at: str, origin: str = ""
    ) -> Mission | None: ...

    async def upsert_agent(self, agent: AgentProfile) -> AgentProfile: ...

    async def request_approval(self, request: ApprovalRequest) -> None: ...

    async def list_approvals(self) -> list[ApprovalRequest]: ...

    def subscribe(self, handler: ChangeHandler) -> Callable[[], None]: ...


def apply_claim(row: dict[str, Any], *, session_key: str, started_at: str, now: str) -> bool:
    """Conditional update behind every claim: mutate *row* and return True only if claimable.

    The row must be lifecycle-ready and in a claimable status. The caller holds
    whatever lock makes this read-modify-write atomic.
    """
    phase = row.get("mission_phase") or "tasks"
    phase_status = row.get("mission_phase_status") or "approved"
    if phase != "tasks" or phase_status != "approved":
        return False
    if (row.get("status") or "scheduled") not in CLAIMABLE_MISSION_STATUSES:
        return False
    row["status"] = "in_progress"
    row["started_at"] = row.get("started_at") or started_at
    row["session_key"] = session_key
    row["updated_at"] = now
    return True


def stamp(patch: dict[str, Any], *, origin: str, now: str) -> dict[str, Any]:
    stamped = dict(patch)
    stamped["updated_at"] = now
    stamped[WRITER_FIELD] = origin
    return stamped


class SubscriberList:
    """Change-feed fan-out. A failing subscriber never breaks the writer."""

    def __init__(self) -> None:
        self._handlers: list[ChangeHandler] = []

    def add(self, handler: ChangeHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def _remove() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _remove

    def publish(self, event: ChangeEvent) -> None:
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception as exc:
                logger.warning("change-feed subscriber failed on %s/%s: %s", event.table, event.kind, exc)
