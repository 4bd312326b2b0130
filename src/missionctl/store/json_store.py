"""Single-document JSON store guarded by flock.

Every write is a locked read-modify-write of one JSON file, so two scheduler
processes pointed at the same file get a real compare-and-swap for mission
claims. External edits are picked up by ``watch()``, a polling change feed.
"""

from __future__ import annotations

import asyncio
import contextlib
import copy
import logging
from pathlib import Path
from typing import Any, Callable, Iterator

from missionctl.errors import StoreError
from missionctl.protocol.io import read_json, write_json_atomic
from missionctl.protocol.locks import locked_file
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
    ChangeKind,
    SubscriberList,
    Table,
    WRITER_FIELD,
    apply_claim,
    stamp,
)

logger = logging.getLogger(__name__)

_TABLES: tuple[Table, ...] = ("tasks", "missions", "agents")


def _empty_document() -> dict[str, Any]:
    return {"tasks": {}, "missions": {}, "agents": {}, "approvals": []}


class JsonFileStore:
    def __init__(self, path: str | Path, now: Callable[[], str] = utc_now_iso) -> None:
        self.path = Path(path)
        self.lock_path = self.path.with_suffix(self.path.suffix + ".lock")
        self._now = now
        self._subscribers = SubscriberList()
        self._snapshot: dict[str, dict[str, Any]] = {}

    # -- document access -----------------------------------------------------

    def _read(self) -> dict[str, Any]:
        raw = read_json(self.path, default=None)
        doc = _empty_document()
        if isinstance(raw, dict):
            for table in _TABLES:
                if isinstance(raw.get(table), dict):
                    doc[table] = raw[table]
            if isinstance(raw.get("approvals"), list):
                doc["approvals"] = raw["approvals"]
        return doc

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[dict[str, Any]]:
        try:
            with locked_file(self.lock_path):
                doc = self._read()
                yield doc
                write_json_atomic(self.path, doc)
        except OSError as e:
            raise StoreError(f"JSON store write failed ({self.path}): {e}") from e

    def _table(self, table: str) -> dict[str, Any]:
        try:
            with locked_file(self.lock_path):
                return self._read()[table]
        except OSError as e:
            raise StoreError(f"JSON store read failed ({self.path}): {e}") from e

    # -- reads ---------------------------------------------------------------

    async def list_tasks(self) -> list[Task]:
        return [Task.from_dict(row) for row in self._table("tasks").values()]

    async def list_missions(self) -> list[Mission]:
        return [Mission.from_dict(row) for row in self._table("missions").values()]

    async def list_agents(self) -> list[AgentProfile]:
        return [AgentProfile.from_dict(row) for row in self._table("agents").values()]

    async def get_task(self, task_id: str) -> Task | None:
        row = self._table("tasks").get(task_id)
        return Task.from_dict(row) if isinstance(row, dict) else None

    async def list_approvals(self) -> list[ApprovalRequest]:
        rows = self._table("approvals")
        return [ApprovalRequest(**row) for row in rows if isinstance(row, dict)]

    # -- writes --------------------------------------------------------------

    async def insert_task(self, task: Task, *, origin: str = "") -> Task:
        row = task.to_row()
        row[WRITER_FIELD] = origin
        with self._transaction() as doc:
            doc["tasks"][task.id] = row
        self._remember("tasks", row)
        self._publish("tasks", "insert", row, origin)
        return Task.from_dict(row)

    async def update_task(self, task_id: str, patch: dict[str, Any], *, origin: str = "") -> Task | None:
        with self._transaction() as doc:
            row = doc["tasks"].get(task_id)
            if row is None:
                return None
            row.update(stamp(patch, origin=origin, now=self._now()))
        self._remember("tasks", row)
        self._publish("tasks", "update", row, origin)
        return Task.from_dict(row)

    async def upsert_mission(self, mission: Mission, *, origin: str = "") -> Mission:
        row = mission.to_dict()
        row[WRITER_FIELD] = origin
        with self._transaction() as doc:
            kind = "update" if mission.id in doc["missions"] else "insert"
            doc["missions"][mission.id] = row
        self._remember("missions", row)
        self._publish("missions", kind, row, origin)
        return Mission.from_dict(row)

    async def update_mission(
        self, mission_id: str, patch: dict[str, Any], *, origin: str = ""
    ) -> Mission | None:
        with self._transaction() as doc:
            row = doc["missions"].get(mission_id)
            if row is None:
                return None
            row.update(stamp(patch, origin=origin, now=self._now()))
        self._remember("missions", row)
        self._publish("missions", "update", row, origin)
        return Mission.from_dict(row)

    async def claim_mission(
        self, mission_id: str, *, session_key: str, started_at: str, origin: str = ""
    ) -> Mission | None:
        claimed = False
        with self._transaction() as doc:
            row = doc["missions"].get(mission_id)
            if row is None:
                return None
            claimed = apply_claim(row, session_key=session_key, started_at=started_at, now=self._now())
            if claimed:
                row[WRITER_FIELD] = origin
        if not claimed:
            return None
        self._remember("missions", row)
        self._publish("missions", "update", row, origin)
        return Mission.from_dict(row)

    async def upsert_agent(self, agent: AgentProfile) -> AgentProfile:
        row = agent.to_dict()
        with self._transaction() as doc:
            doc["agents"][agent.agent_id] = row
        self._remember("agents", row)
        return AgentProfile.from_dict(row)

    async def request_approval(self, request: ApprovalRequest) -> None:
        with self._transaction() as doc:
            doc["approvals"].append(request.to_dict())

    # -- change feed ---------------------------------------------------------

    def subscribe(self, handler: ChangeHandler) -> Callable[[], None]:
        return self._subscribers.add(handler)

    def poll_changes(self) -> list[ChangeEvent]:
        """Diff the file against the last seen rows and publish what changed."""
        try:
            with locked_file(self.lock_path):
                doc = self._read()
        except OSError as e:
            raise StoreError(f"JSON store read failed ({self.path}): {e}") from e
        events: list[ChangeEvent] = []
        for table in _TABLES:
            seen = self._snapshot.setdefault(table, {})
            for row_id, row in doc[table].items():
                if not isinstance(row, dict):
                    continue
                previous = seen.get(row_id)
                if previous == row:
                    continue
                kind: ChangeKind = "insert" if previous is None else "update"
                seen[row_id] = copy.deepcopy(row)
                origin = str(row.get(WRITER_FIELD, ""))
                events.append(ChangeEvent(table=table, kind=kind, row=copy.deepcopy(row), origin=origin))
        for event in events:
            self._subscribers.publish(event)
        return events

    async def watch(self, interval: float = 2.0, stop: asyncio.Event | None = None) -> None:
        """Poll for external edits until *stop* is set."""
        stop = stop or asyncio.Event()
        self.poll_changes()
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            if stop.is_set():
                break
            try:
                self.poll_changes()
            except StoreError as exc:
                logger.warning("change-feed poll failed: %s", exc)

    def _remember(self, table: str, row: dict[str, Any]) -> None:
        row_id = row.get("id") or row.get("agent_id")
        if row_id:
            self._snapshot.setdefault(table, {})[str(row_id)] = copy.deepcopy(row)

    def _publish(self, table: Any, kind: Any, row: dict[str, Any], origin: str) -> None:
        self._subscribers.publish(ChangeEvent(table=table, kind=kind, row=copy.deepcopy(row), origin=origin))
