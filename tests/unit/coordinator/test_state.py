from __future__ import annotations

from missionctl.coordinator.state import MissionControlState
from missionctl.store.base import ChangeEvent
from tests.helpers import make_agent, make_mission, make_task


def test_unknown_agent_defaults_to_level_one() -> None:
    state = MissionControlState()
    state.set_agents([make_agent("agent-a", level=3, name="Ada")])
    assert state.level_of("agent-a") == 3
    assert state.name_of("agent-a") == "Ada"
    assert state.level_of("stranger") == 1
    assert state.name_of("stranger") == "stranger"


def test_patches_ignore_unknown_fields() -> None:
    state = MissionControlState()
    state.load([make_task()], [make_mission()])
    updated = state.apply_task_patch("task-1", {"status": "in_progress", "last_writer": "x"})
    assert updated is not None and updated.status == "in_progress"
    assert state.apply_task_patch("ghost", {"status": "done"}) is None
    mission = state.apply_mission_patch("task-1", {"status": "in_progress", "bogus": 1})
    assert mission is not None and mission.status == "in_progress"


def test_reconcile_keeps_runtime_fields() -> None:
    state = MissionControlState()
    state.load([make_task(status="in_progress", active_run_id="run-1", active_summary="Running Ada...")])
    remote = make_task(status="in_progress", title="Renamed remotely").to_row()
    assert state.reconcile(ChangeEvent(table="tasks", kind="update", row=remote))
    task = state.tasks["task-1"]
    assert task.title == "Renamed remotely"
    assert task.active_run_id == "run-1"
    assert task.active_summary == "Running Ada..."


def test_reconcile_ignores_stale_pending_status_for_running_task() -> None:
    state = MissionControlState()
    state.load([make_task(status="in_progress", started_at="2026-02-24T12:00:00+00:00")])
    stale = make_task(status="todo").to_row()
    state.reconcile(ChangeEvent(table="tasks", kind="update", row=stale))
    assert state.tasks["task-1"].status == "in_progress"
    assert state.tasks["task-1"].started_at == "2026-02-24T12:00:00+00:00"


def test_reconcile_inserts_and_other_tables() -> None:
    state = MissionControlState()
    assert state.reconcile(ChangeEvent(table="tasks", kind="insert", row=make_task("new").to_row()))
    assert "new" in state.tasks
    assert state.reconcile(ChangeEvent(table="missions", kind="insert", row=make_mission("m").to_dict()))
    assert state.reconcile(ChangeEvent(table="agents", kind="insert", row=make_agent("agent-b").to_dict()))
    assert state.level_of("agent-b") == 4
    assert not state.reconcile(ChangeEvent(table="tasks", kind="insert", row={}))


def test_running_tasks_and_placeholder() -> None:
    state = MissionControlState()
    state.load(
        [
            make_task("m"),
            make_task("c1", root_task_id="m", status="review"),
            make_task("c2", root_task_id="m", status="todo"),
        ]
    )
    assert [t.id for t in state.running_tasks()] == ["c1"]
    assert state.is_placeholder(state.tasks["m"])
    assert len(state.mission_tasks("m")) == 3
