"""Backing stores for tasks, missions, agents and approval requests."""

from missionctl.store.base import ChangeEvent, MissionStore
from missionctl.store.json_store import JsonFileStore
from missionctl.store.memory import InMemoryStore

__all__ = ["ChangeEvent", "InMemoryStore", "JsonFileStore", "MissionStore"]
