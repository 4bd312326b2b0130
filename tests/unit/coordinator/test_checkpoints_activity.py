from __future__ import annotations

import json
from pathlib import Path

from missionctl.coordinator.activity import ActivityEvent, ActivityLog
from missionctl.coordinator.checkpoints import CheckpointStore
from missionctl.protocol.models import RunCheckpoint


def test_checkpoints_persist_and_reload(tmp_path: Path) -> None:
    path = tmp_path / "checkpoints.json"
    store = CheckpointStore(path)
    store.save(RunCheckpoint(task_id="t1", phase="review", agent_id="a", prompt="p", buffer="so far"))
    assert "t1" in store

    reloaded = CheckpointStore(path)
    checkpoint = reloaded.get("t1")
    assert checkpoint is not None
    assert checkpoint.phase == "review"
    assert checkpoint.buffer == "so far"

    assert reloaded.remove("t1")
    assert not reloaded.remove("t1")
    assert json.loads(path.read_text(encoding="utf-8")) == {}


def test_memory_only_checkpoints() -> None:
    store = CheckpointStore()
    store.save(RunCheckpoint(task_id="t1", phase="primary", agent_id="a", prompt="p"))
    assert list(store.all()) == ["t1"]


def test_activity_log_history_and_persistence(tmp_path: Path) -> None:
    path = tmp_path / "activity.jsonl"
    log = ActivityLog(persist_path=path, clock=lambda: 123.0)
    seen: list[ActivityEvent] = []

    def collect(item: ActivityEvent) -> None:
        seen.append(item)

    log.subscribe(collect)

    event = log.emit(
        "task_started", "Ada started Task", agent_id="a", task_id="t1", mission_id="m1", run_id="r1"
    )
    log.emit("task_failed", "boom", task_id="t1")

    assert event.timestamp == 123.0
    assert event.data == {"run_id": "r1"}
    assert [e.event_type for e in seen] == ["task_started", "task_failed"]
    assert [e.event_type for e in log.of_type("task_failed")] == ["task_failed"]
    assert len(log.recent(1)) == 1

    lines = path.read_text(encoding="utf-8").splitlines()
    assert json.loads(lines[0])["agent_id"] == "a"

    log.unsubscribe(collect)
    log.emit("noop")
    assert len(seen) == 2


def test_failing_subscriber_is_isolated() -> None:
    log = ActivityLog()

    def broken(event: ActivityEvent) -> None:
        raise RuntimeError("nope")

    log.subscribe(broken)
    log.emit("task_started")
    assert len(log.history) == 1


def test_history_keeps_only_the_newest_events() -> None:
    log = ActivityLog(max_history=3)
    for n in range(5):
        log.emit("tick", f"tick {n}")
    assert [e.message for e in log.history] == ["tick 2", "tick 3", "tick 4"]
    assert [e.message for e in log.recent(2)] == ["tick 3", "tick 4"]
    assert len(log.of_type("tick")) == 3
