"""Failure-cascade policy for missions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from missionctl.coordinator.dependencies import is_root_placeholder
from missionctl.protocol.models import PENDING_TASK_STATUSES, CircuitBreakerPolicy, Mission, Task


@dataclass(slots=True)
class CircuitDecision:
    tripped: bool
    policy: CircuitBreakerPolicy = "continue"
    reason: str = ""
    victims: list[Task] = field(default_factory=list)


def _in_scope(task: Task, failed: Task, policy: CircuitBreakerPolicy) -> bool:
    if task.mission_id != failed.mission_id:
        return False
    if policy == "stop_phase":
        return task.parent_task_id == failed.parent_task_id
    return True


def evaluate_circuit_breaker(mission: Mission, failed: Task, tasks: Sequence[Task]) -> CircuitDecision:
    """Decide whether *failed* trips the mission's breaker and which tasks to cancel.

    ``stop_mission`` trips on any failure. ``stop_phase`` trips once the failed
    count among siblings (same mission, same parent) reaches
    ``max_phase_failures``. Victims are pending siblings that never ran.
    """
    policy = mission.circuit_breaker
    if policy == "continue":
        return CircuitDecision(False)

    scope = [t for t in tasks if _in_scope(t, failed, policy) and not is_root_placeholder(t, tasks)]
    # Redo-superseded tasks do not count.
    failed_count = sum(1 for t in scope if t.status == "failed" and not t.linked_revision_task_id)

    if policy == "stop_phase" and failed_count < mission.max_phase_failures:
        return CircuitDecision(False, policy)

    victims = [t for t in scope if t.id != failed.id and t.status in PENDING_TASK_STATUSES]
    if policy == "stop_phase":
        reason = (
            f"{failed_count} task(s) failed in phase (max: {mission.max_phase_failures}). Policy: stop_phase."
        )
    else:
        reason = f'Task "{failed.title}" failed. Policy: stop_mission.'
    return CircuitDecision(True, policy, reason, victims)
