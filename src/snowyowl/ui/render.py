"""Output rendering for the snowyowl CLI.

File: src/snowyowl/ui/render.py

Purpose
- Plain-text output helpers plus summaries of run reports, parsed task groups
  and doctor checks.
- Respect the ``NO_COLOR`` environment variable and ``--no-color`` flag.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, Final, TextIO

if TYPE_CHECKING:
    from collections.abc import Sequence

    from snowyowl.control_plane.orchestrator import RunReport
    from snowyowl.control_plane.prerequisites import PrerequisiteReport
    from snowyowl.planning.tasks import TaskGroup

_GREEN: Final[str] = "\033[32m"
_RED: Final[str] = "\033[31m"
_YELLOW: Final[str] = "\033[33m"
_RESET: Final[str] = "\033[0m"


def _color_allowed(no_color_flag: bool, stream: TextIO) -> bool:
    if no_color_flag:
        return False
    if os.environ.get("NO_COLOR", ""):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


class CLIRenderer:
    """Thin CLI output renderer."""

    def __init__(self, *, no_color: bool = False, stream: TextIO | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdout
        self._color = _color_allowed(no_color, self._stream)

    def _print(self, line: str = "") -> None:
        print(line, file=self._stream)

    def _paint(self, text: str, color: str) -> str:
        return f"{color}{text}{_RESET}" if self._color else text

    def heading(self, text: str) -> None:
        self._print(text)

    def kv(self, key: str, value: object) -> None:
        self._print(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._print(line)

    def section(self, title: str) -> None:
        self._print(f"\n{title}")

    def warning(self, text: str) -> None:
        self._print(f"  {self._paint('Warning:', _YELLOW)} {text}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._print(f"  {prefix}{entry}")

    def ok(self, label: str) -> None:
        self._print(f"  {self._paint('OK', _GREEN)}  {label}")

    def fail(self, label: str) -> None:
        self._print(f"  {self._paint('FAIL', _RED)}  {label}")

    def task_groups(self, groups: Sequence[TaskGroup]) -> None:
        """Print parsed groups with subtasks indented under their lead task."""

        if not groups:
            self.text("No pending tasks.")
            return
        for index, group in enumerate(groups, start=1):
            for task in group.tasks:
                indent = "  " * task.depth
                marker = f"{index}." if task is group.lead_task else "-"
                link = f"  [{task.specification_link}]" if task.specification_link else ""
                self._print(f"{indent}{marker} {task.title}{link}")

    def prerequisites(self, report: PrerequisiteReport) -> None:
        for check in report.checks:
            label = f"{check.name}: {check.detail}"
            if check.ok:
                self.ok(label)
            elif check.required:
                self.fail(label)
            else:
                self.warning(label)

    def run_report(self, report: RunReport) -> None:
        self.heading(f"snowyowl run ({report.mode.value} mode{', dry run' if report.dry_run else ''})")
        if not report.repositories:
            self.text("No repositories with pending tasks.")
            return

        for repository in report.repositories:
            self.section(repository.name)
            if repository.skipped_reason:
                self.text(f"  skipped: {repository.skipped_reason}")
                continue
            if repository.error:
                self.fail(repository.error)
                continue
            for group in repository.groups:
                line = f"{group.lead_title} [{group.state.value}] {group.branch_name or ''}".rstrip()
                if group.failed:
                    self.fail(line)
                else:
                    self.ok(line)
                if group.publish is not None and group.publish.pull_request_url:
                    self.text(f"      {group.publish.pull_request_url}")
                if group.error:
                    self.text(f"      error: {group.error}")
                if group.skipped:
                    self.text(f"      skipped: {', '.join(group.skipped)}")

        failed = sum(1 for group in report.groups if group.failed) + sum(
            1 for repository in report.repositories if repository.error
        )
        self.section(
            "All task groups finished."
            if report.succeeded
            else f"{failed} failure(s); see the logs for details."
        )


def create_renderer(*, no_color: bool = False) -> CLIRenderer:
    return CLIRenderer(no_color=no_color)


__all__ = ["CLIRenderer", "create_renderer"]
