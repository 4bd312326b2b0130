"""In-process view of tasks, missions and agents owned by one scheduler instance."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from typing import Any, Iterable

from missionctl.coordinator.dependencies import is_root_placeholder
from missionctl.protocol.models import (
    PENDING_TASK_STATUSES,
    RUNTIME_TASK_FIELDS,
    AgentProfile,
    ConnectionQuality,
    Mission,
    Task,
)
from missionctl.store.base import ChangeEvent

logger = logging.getLogger(__name__)

_TASK_FIELDS = frozenset(f.name for f in fields(Task))
_MISSION_FIELDS = frozenset(f.name for f in fields(Mission))


@dataclass(slots=True)
class MissionControlState:
    tasks: dict[str, Task] = field(default_factory=dict)
    missions: dict[str, Mission] = field(default_factory=dict)
    agents: dict[str, AgentProfile] = field(default_factory=dict)
    connection_quality: ConnectionQuality = "good"
    lost_at: float | None = None  # epoch seconds when quality went to "lost"
    reconnecting: bool = False
    last_tick_at: float | None = None
    next_tick_at: float | None = None

    # -- loading -------------------------------------------------------------

    def load(
        self,
        tasks: Iterable[Task] = (),
        missions: Iterable[Mission] = (),
        agents: Iterable[AgentProfile] = (),
    ) -> None:
        self.tasks = {t.id: t for t in tasks}
        self.missions = {m.id: m for m in missions}
        self.set_agents(agents)

    def set_agents(self, agents: Iterable[AgentProfile]) -> None:
        self.agents = {a.agent_id: a for a in agents}

    # -- lookups -------------------------------------------------------------

    def task(self, task_id: str) -> Task | None:
        return self.tasks.get(task_id)

    def mission_for(self, task: Task) -> Mission | None:
        return self.missions.get(task.mission_id)

    def mission_tasks(self, mission_id: str) -> list[Task]:
        return [t for t in self.tasks.values() if t.mission_id == mission_id]

    def agent(self, agent_id: str) -> AgentProfile:
        """Known profile, or a level-1 profile with default guardrails."""
        profile = self.agents.get(agent_id)
        return profile if profile is not None else AgentProfile(agent_id=agent_id)

    def level_of(self, agent_id: str) -> int:
        return self.agent(agent_id).level

    def name_of(self, agent_id: str) -> str:
        return self.agent(agent_id).display_name

    def known_agent_ids(self) -> set[str]:
        return set(self.agents)

    def is_placeholder(self, task: Task) -> bool:
        return is_root_placeholder(task, self.tasks.values())

    def running_tasks(self) -> list[Task]:
        return [t for t in self.tasks.values() if t.is_running]

    # -- mutation ------------------------------------------------------------

    def add_task(self, task: Task) -> None:
        self.tasks[task.id] = task

    def apply_task_patch(self, task_id: str, patch: dict[str, Any]) -> Task | None:
        task = self.tasks.get(task_id)
        if task is None:
            return None
        updated = replace(task, **{k: v for k, v in patch.items() if k in _TASK_FIELDS})
        self.tasks[task_id] = updated
        return updated

    def apply_mission_patch(self, mission_id: str, patch: dict[str, Any]) -> Mission | None:
        mission = self.missions.get(mission_id)
        if mission is None:
            return None
        updated = replace(mission, **{k: v for k, v in patch.items() if k in _MISSION_FIELDS})
        self.missions[mission_id] = updated
        return updated

    # -- change feed ---------------------------------------------------------

    def reconcile(self, event: ChangeEvent) -> bool:
        """Merge an external row. Returns True when local state changed."""
        if event.table == "tasks":
            return self._reconcile_task(Task.from_dict(event.row))
        if event.table == "missions":
            mission = Mission.from_dict(event.row)
            if not mission.id:
                return False
            self.missions[mission.id] = mission
            return True
        if event.table == "agents":
            agent = AgentProfile.from_dict(event.row)
            if not agent.agent_id:
                return False
            self.agents[agent.agent_id] = agent
            return True
        return False

    def _reconcile_task(self, incoming: Task) -> bool:
        if not incoming.id:
            return False
        local = self.tasks.get(incoming.id)
        if local is None:
            self.tasks[incoming.id] = incoming
            return True
        runtime = {name: getattr(local, name) for name in RUNTIME_TASK_FIELDS}
        merged = replace(incoming, **runtime)
        if local.is_running and incoming.status in PENDING_TASK_STATUSES:
            logger.debug("keeping local %s status for task %s over stale remote row", local.status, local.id)
            merged = replace(merged, status=local.status, started_at=local.started_at)
        self.tasks[incoming.id] = merged
        return True
