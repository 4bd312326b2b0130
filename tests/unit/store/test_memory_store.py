"""Tests for the in-memory store and the shared claim rule."""

from __future__ import annotations

import asyncio

import pytest

from missionctl.protocol.models import ApprovalRequest
from missionctl.store.base import ChangeEvent, WRITER_FIELD, apply_claim
from missionctl.store.memory import InMemoryStore
from tests.helpers import make_agent, make_mission, make_task


class TestApplyClaim:
    def test_claimable_row_is_claimed(self) -> None:
        row = {"status": "scheduled", "mission_phase": "tasks", "mission_phase_status": "approved"}
        assert apply_claim(row, session_key="mission:m1:scheduler:abc", started_at="S", now="N")
        assert row["status"] == "in_progress"
        assert row["session_key"] == "mission:m1:scheduler:abc"
        assert row["started_at"] == "S"
        assert row["updated_at"] == "N"

    def test_existing_started_at_is_kept(self) -> None:
        row = {"status": "revision", "started_at": "EARLIER"}
        assert apply_claim(row, session_key="k", started_at="LATER", now="N")
        assert row["started_at"] == "EARLIER"

    @pytest.mark.parametrize("status", ["in_progress", "pending_review", "done", "failed"])
    def test_non_claimable_status(self, status: str) -> None:
        row = {"status": status}
        assert not apply_claim(row, session_key="k", started_at="S", now="N")
        assert row == {"status": status}

    def test_lifecycle_gate(self) -> None:
        row = {"status": "scheduled", "mission_phase": "plan", "mission_phase_status": "approved"}
        assert not apply_claim(row, session_key="k", started_at="S", now="N")
        row = {"status": "scheduled", "mission_phase": "tasks", "mission_phase_status": "draft"}
        assert not apply_claim(row, session_key="k", started_at="S", now="N")


class TestInMemoryStore:
    @pytest.mark.asyncio
    async def test_insert_strips_runtime_fields(self, store: InMemoryStore) -> None:
        task = make_task(active_run_id="run-1", active_thinking="hmm", error_message="boom")
        saved = await store.insert_task(task, origin="scheduler")
        assert saved.active_run_id is None
        assert saved.active_thinking is None
        assert saved.error_message is None
        fetched = await store.get_task("task-1")
        assert fetched is not None
        assert fetched.title == "Task task-1"

    @pytest.mark.asyncio
    async def test_update_stamps_writer_and_time(self, store: InMemoryStore, clock) -> None:
        await store.insert_task(make_task())
        events: list[ChangeEvent] = []
        store.subscribe(events.append)
        clock.advance(10)
        updated = await store.update_task("task-1", {"status": "done"}, origin="worker-a")
        assert updated is not None
        assert updated.status == "done"
        assert updated.updated_at == clock.iso()
        assert events[-1].origin == "worker-a"
        assert events[-1].row[WRITER_FIELD] == "worker-a"
        assert events[-1].kind == "update"

    @pytest.mark.asyncio
    async def test_update_unknown_rows(self, store: InMemoryStore) -> None:
        assert await store.update_task("ghost", {"status": "done"}) is None
        assert await store.update_mission("ghost", {"status": "done"}) is None

    @pytest.mark.asyncio
    async def test_rows_are_copied(self, store: InMemoryStore) -> None:
        task = make_task()
        await store.insert_task(task)
        task.title = "mutated after insert"
        fetched = await store.get_task("task-1")
        assert fetched is not None
        assert fetched.title == "Task task-1"

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_break_writes(self, store: InMemoryStore) -> None:
        def broken(event: ChangeEvent) -> None:
            raise RuntimeError("subscriber bug")

        seen: list[ChangeEvent] = []
        store.subscribe(broken)
        store.subscribe(seen.append)
        await store.insert_task(make_task())
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self, store: InMemoryStore) -> None:
        seen: list[ChangeEvent] = []
        remove = store.subscribe(seen.append)
        remove()
        remove()
        await store.insert_task(make_task())
        assert seen == []

    @pytest.mark.asyncio
    async def test_upsert_mission_kinds(self, store: InMemoryStore) -> None:
        seen: list[ChangeEvent] = []
        store.subscribe(seen.append)
        await store.upsert_mission(make_mission("m1"))
        await store.upsert_mission(make_mission("m1", title="Renamed"))
        assert [e.kind for e in seen] == ["insert", "update"]
        missions = await store.list_missions()
        assert missions[0].title == "Renamed"

    @pytest.mark.asyncio
    async def test_claim_is_exclusive(self, store: InMemoryStore) -> None:
        await store.upsert_mission(make_mission("m1"))
        first, second = await asyncio.gather(
            store.claim_mission("m1", session_key="mission:m1:alpha:1", started_at="S", origin="alpha"),
            store.claim_mission("m1", session_key="mission:m1:beta:1", started_at="S", origin="beta"),
        )
        winners = [m for m in (first, second) if m is not None]
        assert len(winners) == 1
        assert winners[0].status == "in_progress"

    @pytest.mark.asyncio
    async def test_claim_missing_mission(self, store: InMemoryStore) -> None:
        assert await store.claim_mission("nope", session_key="k", started_at="S") is None

    @pytest.mark.asyncio
    async def test_agents_and_approvals(self, store: InMemoryStore) -> None:
        await store.upsert_agent(make_agent("agent-a", level=2, name="Ada"))
        agents = await store.list_agents()
        assert agents[0].level == 2
        assert agents[0].display_name == "Ada"

        request = ApprovalRequest(
            task_id="task-1", mission_id="task-1", agent_id="agent-a", agent_level=1, reason="L1"
        )
        await store.request_approval(request)
        approvals = await store.list_approvals()
        assert approvals == [request]
