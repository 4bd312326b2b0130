"""Mission status aggregation and the per-mission write chain."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Sequence

from missionctl.errors import StoreError
from missionctl.protocol.models import (
    TERMINAL_TASK_STATUSES,
    Mission,
    MissionStatus,
    Task,
    iso_from_ms,
    parse_iso_ms,
)

logger = logging.getLogger(__name__)


def aggregate_status(tasks: Sequence[Task]) -> MissionStatus:
    if not tasks:
        return "scheduled"
    if all(t.status in TERMINAL_TASK_STATUSES for t in tasks):
        return "done" if all(t.status == "done" for t in tasks) else "failed"
    if any(t.status == "review" for t in tasks):
        return "pending_review"
    if any(t.status == "in_progress" for t in tasks):
        return "in_progress"
    if any(t.revision_round > 0 for t in tasks):
        return "revision"
    return "assigned"


def status_source(mission_id: str, tasks: Sequence[Task], fallback: Task | None = None) -> list[Task]:
    """Tasks whose statuses define the mission: everything but the root, or the root alone."""
    executable = [t for t in tasks if t.mission_id == mission_id and t.id != mission_id]
    if executable:
        return executable
    root = [t for t in tasks if t.id == mission_id]
    if root:
        return root
    return [fallback] if fallback is not None else []


@dataclass(slots=True)
class MissionSync:
    patch: dict[str, Any] = field(default_factory=dict)
    # "done" / "failed" when this patch moves the mission into that status.
    transition: str | None = None
    done_count: int = 0
    failed_count: int = 0
    total: int = 0


def _most_recent(tasks: Sequence[Task], attr: str) -> str | None:
    candidates = [t for t in tasks if getattr(t, attr)]
    if not candidates:
        return None
    candidates.sort(key=lambda t: parse_iso_ms(t.updated_at, 0.0), reverse=True)
    return getattr(candidates[0], attr)


def build_mission_patch(mission: Mission, trigger: Task, tasks: Sequence[Task]) -> MissionSync:
    """Derive the mission fields implied by its tasks. Only changed fields are patched."""
    source = status_source(mission.id, tasks, fallback=trigger)
    sync = MissionSync(total=len(source))
    sync.done_count = sum(1 for t in source if t.status == "done")
    sync.failed_count = sum(1 for t in source if t.status == "failed")
    desired: dict[str, Any] = {}

    if mission.lifecycle_ready:
        next_status = aggregate_status(source)
        desired["status"] = next_status
        if next_status in ("done", "failed") and mission.status != next_status:
            sync.transition = next_status

    started = [parse_iso_ms(t.started_at, float("inf")) for t in source]
    started = [v for v in started if v != float("inf")]
    desired["started_at"] = iso_from_ms(min(started)) if started else None

    all_terminal = bool(source) and all(t.status in TERMINAL_TASK_STATUSES for t in source)
    completed = [parse_iso_ms(t.completed_at, float("-inf")) for t in source]
    completed = [v for v in completed if v != float("-inf")]
    desired["completed_at"] = iso_from_ms(max(completed)) if all_terminal and completed else None

    desired["output_text"] = _most_recent(source, "output_text")
    desired["review_notes"] = _most_recent(source, "review_notes")
    desired["revision_round"] = max((t.revision_round for t in source), default=0)
    desired["max_revisions"] = max((t.max_revisions for t in source), default=0)
    desired["review_enabled"] = any(t.review_enabled for t in source)
    desired["review_agent_id"] = next((t.review_agent_id for t in source if t.review_agent_id), None)

    standalone = trigger.id == mission.id and len(source) == 1 and source[0].id == mission.id
    if standalone:
        desired["scheduled_at"] = trigger.due_at

    for key, value in desired.items():
        if getattr(mission, key) != value:
            sync.patch[key] = value
    return sync


class MissionWriteQueue:
    """Serializes backing-store writes per mission id.

    Writes for one mission run strictly in submission order; writes for
    different missions are independent. A failed write is logged and does not
    break the chain.
    """

    def __init__(self) -> None:
        self._chains: dict[str, asyncio.Task[None]] = {}

    def submit(self, mission_id: str, write: Callable[[], Awaitable[Any]]) -> asyncio.Task[None]:
        previous = self._chains.get(mission_id)

        async def _run() -> None:
            if previous is not None:
                await asyncio.gather(previous, return_exceptions=True)
            try:
                await write()
            except StoreError as exc:
                logger.error("failed syncing mission %s: %s", mission_id, exc)

        task = asyncio.create_task(_run(), name=f"mission-sync-{mission_id}")
        self._chains[mission_id] = task

        def _release(done: asyncio.Task[None]) -> None:
            if self._chains.get(mission_id) is done:
                del self._chains[mission_id]

        task.add_done_callback(_release)
        return task

    def pending(self) -> int:
        return len(self._chains)

    async def drain(self) -> None:
        while self._chains:
            await asyncio.gather(*list(self._chains.values()), return_exceptions=True)

    async def wait(self, mission_id: str) -> None:
        """Wait for every write already queued for *mission_id*."""
        chain = self._chains.get(mission_id)
        if chain is not None:
            await asyncio.gather(chain, return_exceptions=True)
