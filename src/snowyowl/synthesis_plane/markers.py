"""Pending-task marker files written when no backend is installed."""

from __future__ import annotations

import re
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

import yaml

from snowyowl.constants import PENDING_TASKS_DIR
from snowyowl.utils.fs import atomic_write

MARKER_STATUS: Final[str] = "pending implementation"

_MARKER_NAME_RE: Final[re.Pattern[str]] = re.compile(r"[^A-Za-z0-9]")


def marker_slug(task_title: str) -> str:
    return _MARKER_NAME_RE.sub("_", task_title.strip()) or "task"


def marker_path(workspace_path: Path, task_title: str) -> Path:
    return workspace_path.joinpath(*PENDING_TASKS_DIR.parts, f"{marker_slug(task_title)}.yaml")


def marker_document(
    task_title: str,
    specification_link: str | None,
    *,
    timestamp: datetime,
) -> dict[str, Any]:
    steps = ["Review the task description above"]
    if specification_link:
        steps.append(f"Read the detailed specification in: {specification_link}")
        steps.append("Implement according to the specification")
    else:
        steps.append("Make necessary code changes")
    steps.append("Test your changes")
    steps.append("Delete this marker file")

    return {
        "task": task_title,
        "specification": specification_link,
        "timestamp": timestamp.isoformat(),
        "status": MARKER_STATUS,
        "steps": [f"{index}. {step}" for index, step in enumerate(steps, start=1)],
    }


def write_marker(
    workspace_path: Path,
    task_title: str,
    specification_link: str | None = None,
    *,
    now: datetime | None = None,
) -> Path:
    """Write ``.pending_tasks/<slug>.yaml`` inside the workspace and return its path."""

    path = marker_path(workspace_path, task_title)
    path.parent.mkdir(parents=True, exist_ok=True)
    document = marker_document(
        task_title,
        specification_link,
        timestamp=now if now is not None else datetime.now(tz=UTC),
    )
    atomic_write(path, yaml.safe_dump(document, sort_keys=False, allow_unicode=True))
    return path


__all__ = [
    "MARKER_STATUS",
    "marker_document",
    "marker_path",
    "marker_slug",
    "write_marker",
]
