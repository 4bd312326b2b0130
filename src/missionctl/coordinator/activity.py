"""Activity log: append-only diagnostic events.

In-process pub/sub with optional JSONL persistence. The engine only writes
here; nothing reads events back to make decisions.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable

from missionctl.protocol.io import append_jsonl

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ActivityEvent:
    """A single activity entry."""

    event_type: str  # "task_started" | "task_failed" | "review_approved" | "circuit_breaker" | ...
    message: str = ""
    agent_id: str = ""
    task_id: str = ""
    mission_id: str = ""
    timestamp: float = field(default_factory=time.time)
    id: str = field(default_factory=lambda: f"activity-{uuid.uuid4().hex[:12]}")
    data: dict[str, Any] = field(default_factory=dict)


class ActivityLog:
    def __init__(
        self,
        persist_path: str | Path | None = None,
        clock: Callable[[], float] = time.time,
        max_history: int = 1000,
    ) -> None:
        self._subscribers: list[Callable[[ActivityEvent], Any]] = []
        self._persist_path = Path(persist_path) if persist_path else None
        self._history: deque[ActivityEvent] = deque(maxlen=max_history)
        self._clock = clock

    def emit(
        self,
        event_type: str,
        message: str = "",
        *,
        agent_id: str | None = None,
        task_id: str = "",
        mission_id: str = "",
        **data: Any,
    ) -> ActivityEvent:
        event = ActivityEvent(
            event_type=event_type,
            message=message,
            agent_id=agent_id or "",
            task_id=task_id,
            mission_id=mission_id,
            timestamp=self._clock(),
            data=data,
        )
        self.record(event)
        return event

    def record(self, event: ActivityEvent) -> None:
        self._history.append(event)
        logger.info("%s: %s", event.event_type, event.message)

        for cb in self._subscribers:
            try:
                cb(event)
            except Exception as exc:
                logger.debug("ActivityLog subscriber error: %s", exc)

        if self._persist_path is not None:
            try:
                append_jsonl(self._persist_path, asdict(event))
            except OSError as exc:
                logger.debug("ActivityLog persist error: %s", exc)

    def subscribe(self, callback: Callable[[ActivityEvent], Any]) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[ActivityEvent], Any]) -> None:
        self._subscribers = [cb for cb in self._subscribers if cb is not callback]

    @property
    def history(self) -> list[ActivityEvent]:
        return list(self._history)

    def recent(self, n: int = 20) -> list[ActivityEvent]:
        return list(self._history)[-n:]

    def of_type(self, event_type: str) -> list[ActivityEvent]:
        return [e for e in self._history if e.event_type == event_type]
