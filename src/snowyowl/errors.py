"""Error taxonomy for the per-repository task pipeline.

Group-local errors (workspace creation, backend execution, commit, push, pull
request creation) are caught by the orchestrator and end only the affected task
group. Run-level errors (prerequisites, a required backend that is missing)
abort the whole run.
"""

from __future__ import annotations


class SnowyOwlError(RuntimeError):
    """Base error for snowyowl failures."""


class PrerequisiteError(SnowyOwlError):
    """Raised when a tool required for the whole run is missing or unusable."""


class InvalidTransitionError(SnowyOwlError):
    """Raised when a task group is driven through an undefined state transition."""


class GroupError(SnowyOwlError):
    """Base class for failures that end a single task group."""


class WorkspaceCreationError(GroupError):
    """Raised when an isolated workspace cannot be created for a task group."""

    def __init__(self, message: str, *, branch_name: str, repository: str) -> None:
        super().__init__(message)
        self.branch_name = branch_name
        self.repository = repository


class BackendUnavailableError(SnowyOwlError):
    """Raised when a backend that configuration requires is not installed."""

    def __init__(self, backend: str, executable: str, *, install_hint: str = "") -> None:
        message = f"{backend} backend executable not found on PATH: {executable}"
        if install_hint:
            message = f"{message} ({install_hint})"
        super().__init__(message)
        self.backend = backend
        self.executable = executable


class BackendExecutionError(GroupError):
    """Raised when a backend run exits non-zero for a task."""

    def __init__(self, task_title: str, exit_code: int, log_path: str | None) -> None:
        message = f"backend failed for task {task_title!r} with exit code {exit_code}"
        if log_path:
            message = f"{message}; see {log_path}"
        super().__init__(message)
        self.task_title = task_title
        self.exit_code = exit_code
        self.log_path = log_path


class CommitError(GroupError):
    """Raised when staging or committing backend output fails."""


class PublishError(GroupError):
    """Base class for push and pull request failures."""

    def __init__(self, message: str, *, branch_name: str, recovery: str) -> None:
        super().__init__(message)
        self.branch_name = branch_name
        self.recovery = recovery


class PushError(PublishError):
    """The branch could not be pushed; no pull request was attempted."""


class PublishPartialError(PublishError):
    """The branch was pushed but the pull request could not be created."""


__all__ = [
    "BackendExecutionError",
    "BackendUnavailableError",
    "CommitError",
    "GroupError",
    "InvalidTransitionError",
    "PrerequisiteError",
    "PublishError",
    "PublishPartialError",
    "PushError",
    "SnowyOwlError",
    "WorkspaceCreationError",
]
