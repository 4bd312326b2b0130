"""In-flight run tracking with run-id aliasing."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Iterator

from missionctl.protocol.models import RunPhase


def trim_thinking(text: str, limit: int) -> str:
    """Keep the last *limit* characters."""
    if len(text) <= limit:
        return text
    return text[len(text) - limit:]


def merge_delta(buffer: str, incoming: str) -> str:
    """Merge a streamed chunk into the buffer.

    Gateways send either cumulative text (each delta repeats everything so far)
    or increments. Cumulative text replaces the buffer; a stale shorter prefix
    is ignored; anything else is appended.
    """
    if not incoming:
        return buffer
    if not buffer or incoming.startswith(buffer):
        return incoming
    if buffer.startswith(incoming):
        return buffer
    return buffer + incoming


@dataclass(slots=True)
class ActiveRun:
    run_id: str
    task_id: str
    agent_id: str
    phase: RunPhase
    buffer: str = ""
    started_ms: float = 0.0
    timeout_task: asyncio.Task[None] | None = field(default=None, repr=False)


class RunRegistry:
    """Runs keyed by local run id. Gateway run ids resolve through aliases."""

    def __init__(self) -> None:
        self._runs: dict[str, ActiveRun] = {}
        self._aliases: dict[str, str] = {}
        self._idle = asyncio.Event()
        self._idle.set()

    def add(self, run: ActiveRun) -> None:
        self._runs[run.run_id] = run
        self._idle.clear()

    def alias(self, alias: str, run_id: str) -> None:
        if alias != run_id:
            self._aliases[alias] = run_id

    def resolve(self, run_id: str) -> str | None:
        local = self._aliases.get(run_id)
        if local is not None:
            return local
        return run_id if run_id in self._runs else None

    def get(self, run_id: str) -> ActiveRun | None:
        local = self.resolve(run_id)
        return self._runs.get(local) if local is not None else None

    def remove(self, run_id: str) -> ActiveRun | None:
        run = self._runs.pop(run_id, None)
        for alias, target in list(self._aliases.items()):
            if target == run_id:
                del self._aliases[alias]
        if not self._runs:
            self._idle.set()
        return run

    def for_task(self, task_id: str) -> list[ActiveRun]:
        return [run for run in self._runs.values() if run.task_id == task_id]

    def count_for_agent(self, agent_id: str) -> int:
        return sum(1 for run in self._runs.values() if run.agent_id == agent_id)

    def aliases_of(self, run_id: str) -> list[str]:
        return [alias for alias, target in self._aliases.items() if target == run_id]

    async def wait_idle(self) -> None:
        await self._idle.wait()

    def __len__(self) -> int:
        return len(self._runs)

    def __iter__(self) -> Iterator[ActiveRun]:
        return iter(list(self._runs.values()))
