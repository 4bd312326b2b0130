from __future__ import annotations

import asyncio

import pytest

from missionctl.coordinator.runs import ActiveRun, RunRegistry, merge_delta, trim_thinking


def test_merge_delta_cumulative_and_incremental() -> None:
    assert merge_delta("", "Hel") == "Hel"
    assert merge_delta("Hel", "Hello") == "Hello"
    assert merge_delta("Hello", "Hel") == "Hello"
    assert merge_delta("Hello", " world") == "Hello world"
    assert merge_delta("Hello", "") == "Hello"


def test_trim_thinking_keeps_tail() -> None:
    assert trim_thinking("abcdef", 10) == "abcdef"
    assert trim_thinking("abcdef", 3) == "def"


class TestRunRegistry:
    def test_alias_resolution_and_removal(self) -> None:
        runs = RunRegistry()
        runs.add(ActiveRun(run_id="local-1", task_id="t1", agent_id="a", phase="primary"))
        runs.alias("server-9", "local-1")
        runs.alias("local-1", "local-1")

        assert runs.resolve("server-9") == "local-1"
        assert runs.resolve("local-1") == "local-1"
        assert runs.resolve("nope") is None
        assert runs.get("server-9") is not None
        assert runs.aliases_of("local-1") == ["server-9"]

        removed = runs.remove("local-1")
        assert removed is not None and removed.task_id == "t1"
        assert runs.resolve("server-9") is None
        assert len(runs) == 0

    def test_counts(self) -> None:
        runs = RunRegistry()
        runs.add(ActiveRun(run_id="r1", task_id="t1", agent_id="a", phase="primary"))
        runs.add(ActiveRun(run_id="r2", task_id="t2", agent_id="a", phase="review"))
        runs.add(ActiveRun(run_id="r3", task_id="t1", agent_id="b", phase="review"))
        assert runs.count_for_agent("a") == 2
        assert {r.run_id for r in runs.for_task("t1")} == {"r1", "r3"}
        assert len(list(runs)) == 3

    @pytest.mark.asyncio
    async def test_wait_idle(self) -> None:
        runs = RunRegistry()
        await asyncio.wait_for(runs.wait_idle(), timeout=0.1)
        runs.add(ActiveRun(run_id="r1", task_id="t1", agent_id="a", phase="primary"))
        waiter = asyncio.create_task(runs.wait_idle())
        await asyncio.sleep(0)
        assert not waiter.done()
        runs.remove("r1")
        await asyncio.wait_for(waiter, timeout=0.1)
