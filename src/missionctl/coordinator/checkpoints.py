"""Run checkpoints, optionally persisted to a JSON file."""

from __future__ import annotations

import logging
from pathlib import Path

from missionctl.protocol.io import read_json, write_json_atomic
from missionctl.protocol.models import RunCheckpoint

logger = logging.getLogger(__name__)


class CheckpointStore:
    """Checkpoints keyed by task id. ``path=None`` keeps them in memory only."""

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path) if path else None
        self._items: dict[str, RunCheckpoint] = {}
        if self._path is not None:
            raw = read_json(self._path, default={})
            if isinstance(raw, dict):
                for task_id, item in raw.items():
                    if isinstance(item, dict):
                        self._items[task_id] = RunCheckpoint.from_dict(item)

    def get(self, task_id: str) -> RunCheckpoint | None:
        return self._items.get(task_id)

    def save(self, checkpoint: RunCheckpoint) -> None:
        self._items[checkpoint.task_id] = checkpoint
        self._flush()

    def remove(self, task_id: str) -> bool:
        if self._items.pop(task_id, None) is None:
            return False
        self._flush()
        return True

    def all(self) -> dict[str, RunCheckpoint]:
        return dict(self._items)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._items

    def _flush(self) -> None:
        if self._path is None:
            return
        try:
            write_json_atomic(self._path, {k: v.to_dict() for k, v in self._items.items()})
        except OSError as exc:
            logger.warning("checkpoint persist failed: %s", exc)
