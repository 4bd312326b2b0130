"""Capacity-bounded scheduling loop."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Awaitable, Callable, Iterable

from missionctl.coordinator.execution import ExecutionEngine
from missionctl.coordinator.recovery import RecoveryManager
from missionctl.errors import SchedulerLockedError
from missionctl.protocol.locks import try_lock
from missionctl.protocol.models import AgentProfile, Task, parse_iso_ms
from missionctl.store.json_store import JsonFileStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RankedCandidates:
    review: list[Task] = field(default_factory=list)
    primary: list[Task] = field(default_factory=list)


@dataclass(slots=True)
class TickResult:
    skipped: bool = False
    reason: str = ""
    capacity: int = 0
    reviews_started: list[str] = field(default_factory=list)
    primaries_started: list[str] = field(default_factory=list)
    deferred: list[str] = field(default_factory=list)
    planned: list[str] = field(default_factory=list)  # dry run only
    errors: list[str] = field(default_factory=list)

    @property
    def started(self) -> list[str]:
        return [*self.reviews_started, *self.primaries_started]


def rank_candidates(
    tasks: Iterable[Task],
    now_ms: float,
    level_of: Callable[[str], int],
    is_placeholder: Callable[[Task], bool],
) -> RankedCandidates:
    """Reviews oldest first; due primaries by agent level desc, then due time asc."""
    review: list[Task] = []
    primary: list[Task] = []
    for task in tasks:
        if task.active_run_id:
            continue
        if task.status == "review" and task.review_agent_id:
            review.append(task)
        elif task.status in ("todo", "blocked") and not is_placeholder(task):
            if parse_iso_ms(task.due_at, 0.0) <= now_ms:
                primary.append(task)
    review.sort(key=lambda t: parse_iso_ms(t.updated_at, now_ms))
    primary.sort(key=lambda t: (-level_of(t.primary_agent_id), parse_iso_ms(t.due_at, 0.0)))
    return RankedCandidates(review=review, primary=primary)


def utc_midnight_ms(now_ms: float) -> float:
    day = datetime.fromtimestamp(now_ms / 1000.0, UTC).replace(hour=0, minute=0, second=0, microsecond=0)
    return day.timestamp() * 1000.0


def started_since(tasks: Iterable[Task], agent_id: str, since_ms: float) -> int:
    return sum(
        1
        for t in tasks
        if t.primary_agent_id == agent_id and t.started_at and parse_iso_ms(t.started_at, 0.0) >= since_ms
    )


def quota_exceeded(profile: AgentProfile, in_flight: int, started_today: int) -> str | None:
    """Reason an agent must wait for a later tick, or None."""
    guardrails = profile.guardrails
    if guardrails.max_concurrent_missions > 0 and in_flight >= guardrails.max_concurrent_missions:
        return f"{profile.display_name} already runs {in_flight} mission(s)"
    if guardrails.max_daily_tasks > 0 and started_today >= guardrails.max_daily_tasks:
        return f"{profile.display_name} reached {started_today} task(s) today"
    return None


class MissionScheduler:
    def __init__(
        self,
        engine: ExecutionEngine,
        recovery: RecoveryManager | None = None,
        *,
        lock_path: str | Path | None = None,
    ) -> None:
        self.engine = engine
        self.config = engine.config
        self.recovery = recovery or RecoveryManager(engine)
        if self.recovery.after_reconnect is None:
            self.recovery.after_reconnect = self.force_tick
        self.lock_path = Path(lock_path) if lock_path else None
        self._lock: contextlib.ExitStack | None = None
        self._ticking = False
        self._stop = asyncio.Event()
        self._loops: list[asyncio.Task[None]] = []
        self._detach: list[Callable[[], None]] = []

    @property
    def ticking(self) -> bool:
        return self._ticking

    def _acquire_lock(self) -> bool:
        """Take the store-wide scheduler lock. Without a lock path there is nothing to take."""
        if self.lock_path is None or self._lock is not None:
            return True
        stack = contextlib.ExitStack()
        if not stack.enter_context(try_lock(self.lock_path)):
            stack.close()
            return False
        self._lock = stack
        return True

    def _release_lock(self) -> None:
        if self._lock is not None:
            self._lock.close()
            self._lock = None

    async def tick(self, *, dry_run: bool = False, limit: int | None = None) -> TickResult:
        if self._ticking:
            return TickResult(skipped=True, reason="tick already running")
        self._ticking = True
        engine = self.engine
        state = engine.state
        try:
            started = engine.clock()
            state.last_tick_at = started
            state.next_tick_at = started + self.config.scheduler.check_interval_seconds

            capacity = max(0, self.config.scheduler.max_active_runs - len(engine.runs))
            if limit is not None:
                capacity = min(capacity, max(0, limit))
            result = TickResult(capacity=capacity)
            if capacity == 0:
                result.reason = "no free capacity"
                return result

            await engine.refresh_agents()
            now_ms = engine.now_ms()
            ranked = rank_candidates(state.tasks.values(), now_ms, state.level_of, state.is_placeholder)

            if dry_run:
                result.planned = [t.id for t in (ranked.review + ranked.primary)[:capacity]]
                return result

            remaining = capacity
            for task in ranked.review:
                if remaining <= 0:
                    break
                if await self._guarded(result, task, engine.start_review_if_ready):
                    result.reviews_started.append(task.id)
                    remaining -= 1

            midnight = utc_midnight_ms(now_ms)
            for task in ranked.primary:
                if remaining <= 0:
                    break
                profile = state.agent(task.primary_agent_id)
                reason = quota_exceeded(
                    profile,
                    engine.runs.count_for_agent(profile.agent_id),
                    started_since(state.tasks.values(), profile.agent_id, midnight),
                )
                if reason is not None:
                    logger.debug("deferring %s: %s", task.id, reason)
                    result.deferred.append(task.id)
                    continue
                if await self._guarded(result, task, engine.start_primary_if_due):
                    result.primaries_started.append(task.id)
                    remaining -= 1
            return result
        finally:
            self._ticking = False

    async def _guarded(self, result: TickResult, task: Task, step: Callable[[str], Awaitable[bool]]) -> bool:
        try:
            return await step(task.id)
        except Exception as exc:
            logger.exception("scheduler step failed for task %s", task.id)
            result.errors.append(task.id)
            self.engine.activity.emit(
                "scheduler_error", f"Scheduler error on {task.title}: {exc}",
                task_id=task.id, mission_id=task.mission_id,
            )
            return False

    async def force_tick(self) -> TickResult:
        return await self.tick()

    # -- lifecycle -----------------------------------------------------------

    async def run_once(self, *, dry_run: bool = False, limit: int | None = None) -> TickResult:
        """One-shot tick for cron use: load, recover, tick, then wait for the started runs.

        A live scheduler on the same store owns every in-flight run, so a
        non-dry tick is skipped while the lock is held elsewhere.
        """
        if not dry_run and not self._acquire_lock():
            logger.info("tick skipped: %s is held by another scheduler", self.lock_path)
            return TickResult(skipped=True, reason="another scheduler holds the store lock")
        engine = self.engine
        try:
            await engine.load()
            engine.attach()
            try:
                if not dry_run:
                    await engine.gateway.connect()
                    await self.recovery.recover_stale_tasks()
                result = await self.tick(dry_run=dry_run, limit=limit)
                if result.started:
                    await self.wait_idle()
                return result
            finally:
                await engine.shutdown()
                await engine.gateway.close()
        finally:
            self._release_lock()

    async def start(self) -> None:
        if not self._acquire_lock():
            raise SchedulerLockedError(str(self.lock_path))
        engine = self.engine
        try:
            await engine.load()
            engine.attach()
            self._detach = self.recovery.attach()
            self._stop.clear()
            await engine.gateway.connect()
            await self.recovery.recover_stale_tasks()
        except Exception:
            self._release_lock()
            raise
        self._loops = [
            asyncio.create_task(self._tick_loop(), name="missionctl-tick"),
            asyncio.create_task(self._grace_loop(), name="missionctl-grace"),
        ]
        if isinstance(engine.store, JsonFileStore):
            self._loops.append(asyncio.create_task(engine.store.watch(stop=self._stop), name="missionctl-watch"))
        logger.info(
            "scheduler started (prefix=%s, max_active_runs=%d)",
            self.config.scheduler.claim_prefix,
            self.config.scheduler.max_active_runs,
        )

    async def stop(self) -> None:
        self._stop.set()
        for loop in self._loops:
            loop.cancel()
        for loop in self._loops:
            with contextlib.suppress(asyncio.CancelledError):
                await loop
        self._loops = []
        while self._detach:
            self._detach.pop()()
        await self.engine.shutdown()
        await self.engine.gateway.close()
        self._release_lock()
        logger.info("scheduler stopped")

    async def run_forever(self, stop: asyncio.Event | None = None) -> None:
        await self.start()
        try:
            if stop is None:
                await self._stop.wait()
            else:
                await stop.wait()
        finally:
            await self.stop()

    async def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait until no run is in flight. Returns False on timeout."""
        try:
            await asyncio.wait_for(self.engine.runs.wait_idle(), timeout)
        except TimeoutError:
            return False
        await self.engine.write_queue.drain()
        return True

    async def _tick_loop(self) -> None:
        interval = self.config.scheduler.check_interval_seconds
        while not self._stop.is_set():
            try:
                await self.tick()
            except Exception:
                logger.exception("tick failed")
            await self._sleep(interval)

    async def _grace_loop(self) -> None:
        interval = self.config.recovery.grace_check_interval_seconds
        while not self._stop.is_set():
            await self._sleep(interval)
            try:
                await self.recovery.check_grace_expiry()
            except Exception:
                logger.exception("grace check failed")

    async def _sleep(self, seconds: float) -> None:
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._stop.wait(), seconds)

