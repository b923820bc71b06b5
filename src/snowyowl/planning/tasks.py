"""Task and task-group records produced from a repository's task list."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace


@dataclass(frozen=True, slots=True)
class Task:
    """One unchecked checklist line.

    ``depth`` is 0 for top-level tasks and greater for nested subtasks.
    ``source_order`` preserves document order across the whole list.
    """

    title: str
    depth: int = 0
    source_order: int = 0
    specification_link: str | None = None

    def __post_init__(self) -> None:
        normalized = self.title.strip()
        if not normalized:
            raise ValueError("Task.title must not be empty")
        if self.depth < 0:
            raise ValueError("Task.depth must be >= 0")
        link = self.specification_link.strip() if self.specification_link else None
        object.__setattr__(self, "title", normalized)
        object.__setattr__(self, "specification_link", link or None)

    @property
    def is_top_level(self) -> bool:
        return self.depth == 0


@dataclass(frozen=True, slots=True)
class TaskGroup:
    """A top-level task plus the subtasks listed under it; one branch per group."""

    lead_task: Task
    member_tasks: tuple[Task, ...] = ()

    @property
    def tasks(self) -> tuple[Task, ...]:
        return (self.lead_task, *self.member_tasks)

    @property
    def titles(self) -> tuple[str, ...]:
        return tuple(task.title for task in self.tasks)


def group_tasks(tasks: Iterable[Task]) -> tuple[TaskGroup, ...]:
    """Split an ordered task sequence into groups at every top-level task.

    A subtask with no preceding top-level task starts its own group as a
    top-level task. Regrouping the flattened result yields the same groups.
    """

    groups: list[TaskGroup] = []
    lead: Task | None = None
    members: list[Task] = []

    for task in tasks:
        if lead is None or task.is_top_level:
            if lead is not None:
                groups.append(TaskGroup(lead_task=lead, member_tasks=tuple(members)))
            lead = task if task.is_top_level else replace(task, depth=0)
            members = []
        else:
            members.append(task)

    if lead is not None:
        groups.append(TaskGroup(lead_task=lead, member_tasks=tuple(members)))
    return tuple(groups)


def flatten_groups(groups: Iterable[TaskGroup]) -> tuple[Task, ...]:
    """Inverse of :func:`group_tasks` for already-grouped input."""

    return tuple(task for group in groups for task in group.tasks)


__all__ = ["Task", "TaskGroup", "flatten_groups", "group_tasks"]
