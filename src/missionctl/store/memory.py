"""In-memory store for tests and embedding."""

from __future__ import annotations

import copy
from typing import Any, Callable

from missionctl.protocol.models import (
    AgentProfile,
    ApprovalRequest,
    Mission,
    Task,
    utc_now_iso,
)
from missionctl.store.base import (
    ChangeEvent,
    ChangeHandler,
    SubscriberList,
    WRITER_FIELD,
    apply_claim,
    stamp,
)


class InMemoryStore:
    """Dict-backed store. Rows are copied in and out so callers never share state."""

    def __init__(self, now: Callable[[], str] = utc_now_iso) -> None:
        self._now = now
        self._tasks: dict[str, dict[str, Any]] = {}
        self._missions: dict[str, dict[str, Any]] = {}
        self._agents: dict[str, dict[str, Any]] = {}
        self._approvals: list[dict[str, Any]] = []
        self._subscribers = SubscriberList()

    # -- reads ---------------------------------------------------------------

    async def list_tasks(self) -> list[Task]:
        return [Task.from_dict(row) for row in self._tasks.values()]

    async def list_missions(self) -> list[Mission]:
        return [Mission.from_dict(row) for row in self._missions.values()]

    async def list_agents(self) -> list[AgentProfile]:
        return [AgentProfile.from_dict(row) for row in self._agents.values()]

    async def get_task(self, task_id: str) -> Task | None:
        row = self._tasks.get(task_id)
        return Task.from_dict(row) if row is not None else None

    async def list_approvals(self) -> list[ApprovalRequest]:
        return [ApprovalRequest(**row) for row in self._approvals]

    # -- writes --------------------------------------------------------------

    async def insert_task(self, task: Task, *, origin: str = "") -> Task:
        row = task.to_row()
        row[WRITER_FIELD] = origin
        self._tasks[task.id] = row
        self._publish("tasks", "insert", row, origin)
        return Task.from_dict(row)

    async def update_task(self, task_id: str, patch: dict[str, Any], *, origin: str = "") -> Task | None:
        row = self._tasks.get(task_id)
        if row is None:
            return None
        row.update(stamp(patch, origin=origin, now=self._now()))
        self._publish("tasks", "update", row, origin)
        return Task.from_dict(row)

    async def upsert_mission(self, mission: Mission, *, origin: str = "") -> Mission:
        kind = "update" if mission.id in self._missions else "insert"
        row = mission.to_dict()
        row[WRITER_FIELD] = origin
        self._missions[mission.id] = row
        self._publish("missions", kind, row, origin)
        return Mission.from_dict(row)

    async def update_mission(
        self, mission_id: str, patch: dict[str, Any], *, origin: str = ""
    ) -> Mission | None:
        row = self._missions.get(mission_id)
        if row is None:
            return None
        row.update(stamp(patch, origin=origin, now=self._now()))
        self._publish("missions", "update", row, origin)
        return Mission.from_dict(row)

    async def claim_mission(
        self, mission_id: str, *, session_key: str, started_at: str, origin: str = ""
    ) -> Mission | None:
        # No await between read and write: the claim is atomic within the event loop.
        row = self._missions.get(mission_id)
        if row is None:
            return None
        if not apply_claim(row, session_key=session_key, started_at=started_at, now=self._now()):
            return None
        row[WRITER_FIELD] = origin
        self._publish("missions", "update", row, origin)
        return Mission.from_dict(row)

    async def upsert_agent(self, agent: AgentProfile) -> AgentProfile:
        kind = "update" if agent.agent_id in self._agents else "insert"
        row = agent.to_dict()
        self._agents[agent.agent_id] = row
        self._publish("agents", kind, row, "")
        return AgentProfile.from_dict(row)

    async def request_approval(self, request: ApprovalRequest) -> None:
        self._approvals.append(request.to_dict())

    def subscribe(self, handler: ChangeHandler) -> Callable[[], None]:
        return self._subscribers.add(handler)

    def _publish(self, table: Any, kind: Any, row: dict[str, Any], origin: str) -> None:
        self._subscribers.publish(ChangeEvent(table=table, kind=kind, row=copy.deepcopy(row), origin=origin))
