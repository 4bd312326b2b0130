from __future__ import annotations

from missionctl.protocol.models import (
    AgentProfile,
    Mission,
    ReviewHistoryEntry,
    RunCheckpoint,
    Task,
    iso_from_ms,
    parse_iso_ms,
)


def test_parse_iso_ms_variants() -> None:
    assert parse_iso_ms("1970-01-01T00:00:01Z", 0.0) == 1000.0
    assert parse_iso_ms("1970-01-01T00:00:01", 0.0) == 1000.0
    assert parse_iso_ms(None, 42.0) == 42.0
    assert parse_iso_ms("yesterday-ish", 7.0) == 7.0
    assert parse_iso_ms(iso_from_ms(1_700_000_000_000), 0.0) == 1_700_000_000_000


def test_task_from_dict_normalises_junk() -> None:
    task = Task.from_dict(
        {
            "id": "t1",
            "title": "Fix login",
            "status": "exploded",
            "domains": ["auth", 3, None],
            "active_phase": "warmup",
            "review_history": [{"round": 1, "action": "shrug", "summary": "hm"}, "junk"],
            "input_media": [{"name": "a.png", "type": "image/png", "url": "file:///a.png"}, 5],
            "max_revisions": None,
        }
    )
    assert task.status == "todo"
    assert task.domains == ["auth"]
    assert task.active_phase is None
    assert len(task.review_history) == 1
    assert task.review_history[0].action == "revise"
    assert task.input_media[0].name == "a.png"
    assert task.max_revisions == 0


def test_task_mission_id_and_flags() -> None:
    root = Task(id="root", title="Root")
    child = Task(id="child", title="Child", root_task_id="root", status="review")
    assert root.mission_id == "root"
    assert child.mission_id == "root"
    assert child.is_running
    assert not child.is_terminal


def test_to_row_drops_runtime_fields() -> None:
    task = Task(id="t1", title="T", active_run_id="r", active_summary="Running", error_message="e")
    row = task.to_row()
    for name in ("active_run_id", "active_phase", "active_thinking", "active_summary", "error_message"):
        assert name not in row
    assert task.to_dict()["active_run_id"] == "r"


def test_review_history_entry_round_trip() -> None:
    entry = ReviewHistoryEntry(round=2, action="redo", summary="wrong", specific_issues=("a", "b"))
    data = entry.to_dict()
    assert data["specific_issues"] == ["a", "b"]
    assert ReviewHistoryEntry.from_dict(data) == entry


def test_mission_lifecycle_and_policy() -> None:
    mission = Mission.from_dict({"id": "m", "circuit_breaker": "panic", "max_phase_failures": 0})
    assert mission.circuit_breaker == "continue"
    assert mission.max_phase_failures == 1
    assert mission.lifecycle_ready
    assert not Mission(id="m", mission_phase_status="draft").lifecycle_ready


def test_agent_profile_level_clamped() -> None:
    assert AgentProfile.from_dict({"agent_id": "a", "level": 9}).level == 4
    assert AgentProfile.from_dict({"agent_id": "a", "current_level": 2}).level == 2
    profile = AgentProfile.from_dict({"agent_id": "a", "guardrails": {"max_daily_tasks": 2, "bogus": 1}})
    assert profile.guardrails.max_daily_tasks == 2
    assert profile.display_name == "a"


def test_checkpoint_from_dict_defaults() -> None:
    cp = RunCheckpoint.from_dict({"task_id": "t", "phase": "sideways"})
    assert cp.phase == "primary"
    assert cp.connection_drops == 0
