"""
snowyowl — planning layer

File: src/snowyowl/planning/__init__.py

Purpose
- Task list parsing and grouping of parsed tasks into one unit of work per
  top-level task.
"""

from __future__ import annotations

from snowyowl.planning.task_parser import (
    TaskParser,
    clean_language_model_output,
    extract_unchecked_items,
    split_specification_link,
    tasks_from_lines,
)
from snowyowl.planning.tasks import Task, TaskGroup, flatten_groups, group_tasks

__all__ = [
    "Task",
    "TaskGroup",
    "TaskParser",
    "clean_language_model_output",
    "extract_unchecked_items",
    "flatten_groups",
    "group_tasks",
    "split_specification_link",
    "tasks_from_lines",
]
