"""Task dependency resolution."""

from __future__ import annotations

from typing import Iterable, Mapping

from missionctl.protocol.models import TERMINAL_TASK_STATUSES, Task


def satisfies_dependency(status: str, policy: str = "done_only") -> bool:
    """Whether a prerequisite in *status* unblocks its dependents under *policy*."""
    if policy == "terminal":
        return status in TERMINAL_TASK_STATUSES
    return status == "done"


def incomplete_dependencies(
    task: Task, tasks_by_id: Mapping[str, Task], policy: str = "done_only"
) -> list[str]:
    """Ids of declared prerequisites that block *task*.

    A prerequisite missing from the task set always blocks.
    """
    blocking: list[str] = []
    for dep_id in task.dependency_task_ids:
        dep = tasks_by_id.get(dep_id)
        if dep is None or not satisfies_dependency(dep.status, policy):
            blocking.append(dep_id)
    return blocking


def incomplete_dependency_titles(
    task: Task, tasks_by_id: Mapping[str, Task], policy: str = "done_only"
) -> list[str]:
    titles: list[str] = []
    for dep_id in incomplete_dependencies(task, tasks_by_id, policy):
        dep = tasks_by_id.get(dep_id)
        titles.append(dep.title if dep is not None and dep.title else dep_id)
    return titles


def can_start(task: Task, tasks_by_id: Mapping[str, Task], policy: str = "done_only") -> bool:
    return not incomplete_dependencies(task, tasks_by_id, policy)


def is_root_placeholder(task: Task, tasks: Iterable[Task]) -> bool:
    """A mission root with child tasks holds no work of its own."""
    if task.mission_id != task.id:
        return False
    return any(other.id != task.id and other.mission_id == task.id for other in tasks)
