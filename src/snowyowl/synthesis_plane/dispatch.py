"""
snowyowl — backend dispatch

File: src/snowyowl/synthesis_plane/dispatch.py

Purpose
- Resolve the configured code-generation backend once per run and hand it one
  task at a time, inside the task group's workspace.

Functional requirements
- ``preflight`` decides between running the backend and writing marker files;
  a missing required backend aborts the run.
- A non-zero exit is a failed result, never an exception.
- Runs longer than the configured timeout are killed and reported with exit
  code 124.
- Backend output is appended to the repository log; results carry a short tail.
"""

from __future__ import annotations

import enum
import os
import shutil
import signal
import subprocess
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

import structlog

from snowyowl.constants import TIMEOUT_EXIT_CODE
from snowyowl.errors import BackendUnavailableError
from snowyowl.synthesis_plane.backends import Backend, get_backend, is_required
from snowyowl.synthesis_plane.markers import write_marker
from snowyowl.synthesis_plane.prompt_templates import (
    IMPLEMENT_WITH_SPEC,
    IMPLEMENT_WITHOUT_SPEC,
    PromptTemplateEngine,
    RenderedPrompt,
)
from snowyowl.utils.fs import append_text

if TYPE_CHECKING:
    from snowyowl.config.settings import BackendSettings
    from snowyowl.integration_plane.workspace_manager import Workspace
    from snowyowl.planning.tasks import Task
    from snowyowl.spec_ingestion.spec_loader import LoadedSpecification

LOG_EXCERPT_LINES: Final[int] = 20
KILL_GRACE_SECONDS: Final[float] = 5.0


class DispatchMode(enum.Enum):
    BACKEND = "backend"
    MARKER = "marker"


@dataclass(frozen=True, slots=True)
class BackendResult:
    succeeded: bool
    exit_code: int
    log_excerpt: str = ""
    log_path: Path | None = None
    marker_path: Path | None = None
    timed_out: bool = False


class BackendDispatcher:
    """Run the selected backend CLI for individual tasks."""

    def __init__(
        self,
        settings: BackendSettings,
        *,
        timeout_seconds: float | None = None,
        templates: PromptTemplateEngine | None = None,
        which: Callable[[str], str | None] = shutil.which,
        logger: Any | None = None,
    ) -> None:
        self._settings = settings
        self._backend: Backend = get_backend(settings.name)
        self._timeout_seconds = timeout_seconds
        self._templates = templates if templates is not None else PromptTemplateEngine()
        self._which = which
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._mode: DispatchMode | None = None
        self._executable_path: str | None = None

    @property
    def backend(self) -> Backend:
        return self._backend

    @property
    def mode(self) -> DispatchMode | None:
        return self._mode

    def preflight(self) -> DispatchMode:
        """Locate the backend executable.

        Raises ``BackendUnavailableError`` when it is missing and required.
        """

        executable = self._settings.selected.executable
        resolved = self._which(executable)
        if resolved is not None:
            self._executable_path = resolved
            self._mode = DispatchMode.BACKEND
            self._logger.info(
                "backend_ready",
                backend=self._backend.name,
                path=resolved,
                model=self._settings.effective_model or None,
            )
            return self._mode

        if is_required(self._backend, self._settings.availability):
            self._logger.error(
                "backend_unavailable",
                backend=self._backend.name,
                executable=executable,
                install_hint=self._backend.install_hint,
            )
            raise BackendUnavailableError(
                self._backend.name, executable, install_hint=self._backend.install_hint
            )

        self._mode = DispatchMode.MARKER
        self._logger.warning(
            "backend_marker_mode",
            backend=self._backend.name,
            executable=executable,
            reason="executable not found; writing pending-task markers",
        )
        return self._mode

    def render_prompt(
        self,
        task: Task,
        workspace: Workspace,
        specification: LoadedSpecification | None = None,
        *,
        member_of: str | None = None,
    ) -> RenderedPrompt:
        variables: dict[str, object] = {
            "repository_name": workspace.repository_name,
            "branch_name": workspace.branch_name,
            "workspace_path": str(workspace.path),
            "task_title": task.title,
            "member_of": member_of or "",
        }
        if specification is not None and specification.available:
            variables["specification"] = specification.content
            return self._templates.render(IMPLEMENT_WITH_SPEC, variables=variables)
        return self._templates.render(IMPLEMENT_WITHOUT_SPEC, variables=variables)

    def implement(
        self,
        task: Task,
        workspace: Workspace,
        specification: LoadedSpecification | None = None,
        *,
        member_of: str | None = None,
        repository_log: Path | None = None,
    ) -> BackendResult:
        mode = self._mode if self._mode is not None else self.preflight()
        if mode is DispatchMode.MARKER:
            path = write_marker(workspace.path, task.title, task.specification_link)
            self._logger.info("backend_marker_written", task=task.title, path=str(path))
            return BackendResult(succeeded=True, exit_code=0, marker_path=path)

        executable_path = self._executable_path
        if executable_path is None:
            raise BackendUnavailableError(
                self._backend.name,
                self._settings.selected.executable,
                install_hint=self._backend.install_hint,
            )

        rendered = self.render_prompt(task, workspace, specification, member_of=member_of)
        command = self._backend.build_command(
            executable_path,
            rendered.prompt,
            model=self._settings.effective_model,
            tools=self._settings.selected,
        )

        self._logger.info(
            "backend_started",
            backend=self._backend.name,
            task=task.title,
            prompt_hash=rendered.prompt_hash,
            template=rendered.template_name,
        )
        self._append_log(
            repository_log,
            f"--- task: {task.title}\nworkspace: {workspace.path}\nbackend: {self._backend.name}",
        )

        exit_code, output, timed_out = self._run(command.argv, command.stdin, cwd=workspace.path)
        self._append_log(repository_log, output)

        excerpt = _tail(output, LOG_EXCERPT_LINES)
        result = BackendResult(
            succeeded=exit_code == 0,
            exit_code=exit_code,
            log_excerpt=excerpt,
            log_path=repository_log,
            timed_out=timed_out,
        )
        if result.succeeded:
            self._logger.info("backend_finished", backend=self._backend.name, task=task.title)
        else:
            self._logger.error(
                "backend_failed",
                backend=self._backend.name,
                task=task.title,
                exit_code=exit_code,
                timed_out=timed_out,
                log_path=str(repository_log) if repository_log else None,
            )
        return result

    def _run(
        self,
        argv: tuple[str, ...],
        stdin: str | None,
        *,
        cwd: Path,
    ) -> tuple[int, str, bool]:
        try:
            process = subprocess.Popen(
                argv,
                cwd=cwd,
                stdin=subprocess.PIPE if stdin is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                start_new_session=sys.platform != "win32",
            )
        except OSError as exc:
            return 127, f"failed to start {argv[0]}: {exc}", False

        try:
            output, _ = process.communicate(input=stdin, timeout=self._timeout_seconds)
        except subprocess.TimeoutExpired:
            _kill_process_group(process)
            try:
                output, _ = process.communicate(timeout=KILL_GRACE_SECONDS)
            except subprocess.TimeoutExpired:
                # A descendant left the process group and still holds the pipe.
                self._logger.warning("backend_output_abandoned", pid=process.pid)
                output = ""
            note = f"\n[snowyowl] killed after {self._timeout_seconds}s timeout"
            return TIMEOUT_EXIT_CODE, (output or "") + note, True
        return process.returncode, output or "", False

    def _append_log(self, repository_log: Path | None, text: str) -> None:
        if repository_log is None or not text:
            return
        try:
            append_text(repository_log, text)
        except OSError as exc:
            self._logger.warning(
                "repository_log_write_failed", path=str(repository_log), error=str(exc)
            )


def _kill_process_group(process: subprocess.Popen[str]) -> None:
    """SIGKILL the backend and every helper it started."""

    if sys.platform == "win32":
        process.kill()
        return
    try:
        os.killpg(os.getpgid(process.pid), signal.SIGKILL)
    except (ProcessLookupError, OSError):
        process.kill()


def _tail(text: str, lines: int) -> str:
    return "\n".join(text.rstrip().splitlines()[-lines:])


__all__ = [
    "BackendDispatcher",
    "BackendResult",
    "DispatchMode",
    "LOG_EXCERPT_LINES",
]
