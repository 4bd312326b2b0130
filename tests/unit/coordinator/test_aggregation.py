"""Tests for mission aggregation and the per-mission write chain."""

from __future__ import annotations

import asyncio

import pytest

from missionctl.coordinator.aggregation import (
    MissionWriteQueue,
    aggregate_status,
    build_mission_patch,
    status_source,
)
from missionctl.errors import StoreError
from tests.helpers import make_mission, make_task


@pytest.mark.parametrize(
    ("statuses", "rounds", "expected"),
    [
        ([], [], "scheduled"),
        (["done", "done"], [0, 0], "done"),
        (["done", "failed"], [0, 0], "failed"),
        (["review", "in_progress"], [0, 0], "pending_review"),
        (["in_progress", "todo"], [0, 0], "in_progress"),
        (["todo", "done"], [1, 0], "revision"),
        (["todo", "blocked"], [0, 0], "assigned"),
    ],
)
def test_aggregate_status(statuses: list[str], rounds: list[int], expected: str) -> None:
    tasks = [
        make_task(f"t{i}", status=status, revision_round=rnd)
        for i, (status, rnd) in enumerate(zip(statuses, rounds))
    ]
    assert aggregate_status(tasks) == expected


def test_status_source_excludes_root_with_children() -> None:
    root = make_task("m")
    child = make_task("c", root_task_id="m")
    other = make_task("x")
    assert status_source("m", [root, child, other]) == [child]
    assert status_source("x", [root, child, other]) == [other]
    assert status_source("gone", [], fallback=other) == [other]


def test_patch_for_completed_standalone_mission() -> None:
    mission = make_mission("task-1", status="in_progress")
    task = make_task(
        status="done",
        started_at="2026-02-24T12:00:00+00:00",
        completed_at="2026-02-24T12:05:00+00:00",
        output_text="final",
        due_at="2026-02-24T11:00:00+00:00",
    )
    sync = build_mission_patch(mission, task, [task])
    assert sync.transition == "done"
    assert sync.patch["status"] == "done"
    assert sync.patch["output_text"] == "final"
    assert sync.patch["completed_at"] == "2026-02-24T12:05:00+00:00"
    assert sync.patch["scheduled_at"] == "2026-02-24T11:00:00+00:00"
    assert sync.done_count == 1 and sync.total == 1


def test_patch_only_changed_fields() -> None:
    mission = make_mission("task-1", status="assigned")
    task = make_task()
    sync = build_mission_patch(mission, task, [task])
    assert sync.patch == {}
    assert sync.transition is None


def test_not_lifecycle_ready_keeps_status() -> None:
    mission = make_mission("task-1", mission_phase_status="draft")
    task = make_task(status="done", completed_at="2026-02-24T12:05:00+00:00")
    sync = build_mission_patch(mission, task, [task])
    assert "status" not in sync.patch
    assert sync.transition is None


def test_multi_task_mission_latest_output_and_bounds() -> None:
    mission = make_mission("m", status="in_progress")
    root = make_task("m")
    a = make_task(
        "a", root_task_id="m", status="done", output_text="older",
        started_at="2026-02-24T12:01:00+00:00", completed_at="2026-02-24T12:02:00+00:00",
        updated_at="2026-02-24T12:02:00+00:00",
    )
    b = make_task(
        "b", root_task_id="m", status="failed", output_text="newer", revision_round=2, max_revisions=3,
        started_at="2026-02-24T12:00:30+00:00", completed_at="2026-02-24T12:09:00+00:00",
        updated_at="2026-02-24T12:09:00+00:00",
    )
    sync = build_mission_patch(mission, a, [root, a, b])
    assert sync.transition == "failed"
    assert sync.patch["started_at"] == "2026-02-24T12:00:30+00:00"
    assert sync.patch["completed_at"] == "2026-02-24T12:09:00+00:00"
    assert sync.patch["output_text"] == "newer"
    assert sync.patch["revision_round"] == 2
    assert sync.failed_count == 1 and sync.total == 2
    assert "scheduled_at" not in sync.patch


class TestMissionWriteQueue:
    @pytest.mark.asyncio
    async def test_writes_run_in_order_per_mission(self) -> None:
        queue = MissionWriteQueue()
        order: list[str] = []

        def writer(label: str, delay: float):
            async def _write() -> None:
                await asyncio.sleep(delay)
                order.append(label)

            return _write

        queue.submit("m1", writer("m1-first", 0.02))
        queue.submit("m1", writer("m1-second", 0.0))
        queue.submit("m2", writer("m2-only", 0.0))
        await queue.drain()
        assert order.index("m1-first") < order.index("m1-second")
        assert order[0] == "m2-only"
        assert queue.pending() == 0

    @pytest.mark.asyncio
    async def test_failed_write_does_not_break_chain(self) -> None:
        queue = MissionWriteQueue()
        done: list[str] = []

        async def failing() -> None:
            raise StoreError("disk full")

        async def succeeding() -> None:
            done.append("ok")

        queue.submit("m1", failing)
        queue.submit("m1", succeeding)
        await queue.drain()
        assert done == ["ok"]

    @pytest.mark.asyncio
    async def test_wait_for_one_mission(self) -> None:
        queue = MissionWriteQueue()
        done: list[str] = []

        async def slow() -> None:
            await asyncio.sleep(0.01)
            done.append("m1")

        queue.submit("m1", slow)
        await queue.wait("m1")
        assert done == ["m1"]
        await queue.wait("unknown")
