"""Connection-loss handling and stale-run recovery."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable

from missionctl.config.schema import RecoveryConfig
from missionctl.coordinator.checkpoints import CheckpointStore
from missionctl.coordinator.execution import ExecutionEngine
from missionctl.coordinator.runs import RunRegistry
from missionctl.protocol.models import ConnectionQuality, Task, parse_iso_ms

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StaleRunResult:
    stale_tasks: list[str]
    exhausted_tasks: list[str]  # hit max_connection_drops; fail instead of re-queueing


def evaluate_stale_runs(
    running: Iterable[Task],
    checkpoints: CheckpointStore,
    now_ms: float,
    grace_seconds: float = 120.0,
    max_connection_drops: int = 3,
) -> StaleRunResult:
    stale: list[str] = []
    exhausted: list[str] = []
    for task in running:
        updated_ms = parse_iso_ms(task.updated_at, now_ms)
        if task.active_run_id and now_ms - updated_ms <= grace_seconds * 1000:
            continue
        checkpoint = checkpoints.get(task.id)
        if checkpoint is not None and checkpoint.connection_drops >= max_connection_drops:
            exhausted.append(task.id)
        else:
            stale.append(task.id)
    return StaleRunResult(stale_tasks=stale, exhausted_tasks=exhausted)


def find_orphan_runs(runs: RunRegistry, running_task_ids: set[str]) -> list[str]:
    """Local run ids whose task is no longer marked running."""
    return [run.run_id for run in runs if run.task_id not in running_task_ids]


class RecoveryManager:
    def __init__(
        self,
        engine: ExecutionEngine,
        config: RecoveryConfig | None = None,
        after_reconnect: Callable[[], Awaitable[object]] | None = None,
    ) -> None:
        self.engine = engine
        self.config = config or engine.config.recovery
        self.after_reconnect = after_reconnect

    @property
    def grace_label(self) -> str:
        return f"{self.config.connection_grace_seconds:g}s"

    def attach(self) -> list[Callable[[], None]]:
        gateway = self.engine.gateway
        return [
            gateway.on_quality_change(self.on_quality_change),
            gateway.on_reconnect(self.on_reconnect),
        ]

    async def on_quality_change(self, quality: ConnectionQuality) -> None:
        state = self.engine.state
        state.connection_quality = quality
        if quality == "good":
            state.reconnecting = False
            state.lost_at = None
            return
        if quality != "lost":
            return

        state.reconnecting = True
        if state.lost_at is None:
            state.lost_at = self.engine.clock()
        logger.warning("gateway connection lost; failing in-flight runs after %s", self.grace_label)
        for task in state.running_tasks():
            if not task.active_run_id:
                continue
            await self.engine.update_task(
                task.id,
                {"active_summary": f"Connection lost. Waiting to reconnect (grace: {self.grace_label})..."},
            )
            checkpoint = self.engine.checkpoints.get(task.id)
            if checkpoint is not None:
                checkpoint.buffer = task.active_thinking or checkpoint.buffer
                checkpoint.connection_drops += 1
                self.engine.checkpoints.save(checkpoint)

    async def check_grace_expiry(self) -> int:
        """Fail every run still in flight once the connection has been lost for the grace period."""
        state = self.engine.state
        if state.lost_at is None:
            return 0
        elapsed = self.engine.clock() - state.lost_at
        if elapsed < self.config.connection_grace_seconds:
            return 0

        failed = 0
        for task in state.running_tasks():
            if not task.active_run_id:
                continue
            for run in self.engine.runs.for_task(task.id):
                self.engine.cleanup_run(run.run_id)
            self.engine.checkpoints.remove(task.id)
            await self.engine.fail_task(
                task.id,
                f"Connection lost for {round(elapsed)}s (grace period: {self.grace_label}).",
                summary="Failed: connection lost for too long.",
            )
            self.engine.activity.emit(
                "connection_timeout", f"Mission failed after connection loss: {task.title}",
                agent_id=task.primary_agent_id, task_id=task.id, mission_id=task.mission_id,
            )
            failed += 1
        state.lost_at = None
        return failed

    def purge_orphans(self) -> int:
        running = {t.id for t in self.engine.state.running_tasks()}
        orphans = find_orphan_runs(self.engine.runs, running)
        for run_id in orphans:
            self.engine.cleanup_run(run_id)
        if orphans:
            logger.info("purged %d orphaned run(s)", len(orphans))
        return len(orphans)

    async def recover_stale_tasks(self) -> int:
        engine = self.engine
        state = engine.state
        result = evaluate_stale_runs(
            state.running_tasks(),
            engine.checkpoints,
            engine.now_ms(),
            self.config.stale_run_grace_seconds,
            self.config.max_connection_drops,
        )

        for task_id in result.exhausted_tasks:
            task = state.task(task_id)
            if task is None:
                continue
            checkpoint = engine.checkpoints.get(task_id)
            drops = checkpoint.connection_drops if checkpoint else 0
            self._drop_runs(task_id)
            engine.checkpoints.remove(task_id)
            await engine.fail_task(
                task_id,
                f"Connection dropped {drops} time(s) during this run; giving up.",
                summary="Failed: too many connection drops.",
            )
            engine.activity.emit(
                "connection_timeout", f"Mission failed after repeated connection drops: {task.title}",
                agent_id=task.primary_agent_id, task_id=task_id, mission_id=task.mission_id,
            )

        for task_id in result.stale_tasks:
            task = state.task(task_id)
            if task is None:
                continue
            self._drop_runs(task_id)
            runtime_reset = {
                "active_phase": None,
                "active_run_id": None,
                "active_thinking": None,
                "error_message": None,
            }

            if task.status == "review" and task.review_enabled and task.review_agent_id:
                await engine.update_task(
                    task_id,
                    {
                        **runtime_reset,
                        "status": "review",
                        "active_summary": "Recovered after restart. Re-queueing review...",
                    },
                )
                engine.activity.emit(
                    "task_recovered", f"Recovered review task after restart: {task.title}",
                    agent_id=task.review_agent_id, task_id=task_id, mission_id=task.mission_id,
                )
                continue

            mission = state.mission_for(task)
            lifecycle_ready = mission is None or mission.lifecycle_ready
            unmet = engine.dependency_titles(task)
            if mission is not None and not lifecycle_ready:
                phase = mission.mission_phase or "tasks"
                summary = f"Recovered after restart. Waiting for {phase} approval..."
            elif unmet:
                summary = f"Recovered after restart. Blocked by: {', '.join(unmet)}"
            else:
                summary = "Recovered after restart. Re-queueing task..."
            await engine.update_task(
                task_id,
                {
                    **runtime_reset,
                    "status": "blocked" if (not lifecycle_ready or unmet) else "todo",
                    "active_summary": summary,
                },
            )
            engine.activity.emit(
                "task_recovered", f"Recovered task after restart: {task.title}",
                agent_id=task.primary_agent_id, task_id=task_id, mission_id=task.mission_id,
            )

        return len(result.stale_tasks) + len(result.exhausted_tasks)

    def _drop_runs(self, task_id: str) -> None:
        for run in self.engine.runs.for_task(task_id):
            self.engine.cleanup_run(run.run_id)

    async def on_reconnect(self) -> None:
        state = self.engine.state
        state.reconnecting = False
        state.lost_at = None
        state.connection_quality = "good"
        self.engine.activity.emit(
            "connection_restored", "Connection restored. Recovering interrupted missions..."
        )
        self.purge_orphans()
        await self.recover_stale_tasks()
        if self.after_reconnect is not None:
            await self.after_reconnect()
