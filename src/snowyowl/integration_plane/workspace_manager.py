"""Git-worktree-backed workspace lifecycle management."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from snowyowl.constants import DEFAULT_REMOTE
from snowyowl.errors import WorkspaceCreationError
from snowyowl.integration_plane.git_engine import GitEngine, GitEngineError
from snowyowl.utils.fs import is_within, safe_delete


@dataclass(frozen=True, slots=True)
class Workspace:
    """
    Isolated checkout for one task group.

    Required fields:
    - path
    - branch_name
    - base_branch
    - repository_path

    ``base_ref`` is the ref the branch was created from (``main`` or
    ``origin/main``); it is what "commits beyond the base" is measured against.
    """

    path: Path
    branch_name: str
    base_branch: str
    repository_path: Path
    base_ref: str | None = None

    @property
    def repository_name(self) -> str:
        return self.repository_path.name


def workspace_dir_name(repository_name: str, branch_name: str) -> str:
    return f"{repository_name}-{branch_name.replace('/', '-')}"


class WorkspaceManager:
    """Create and remove per-group git worktrees under one workspaces directory."""

    def __init__(
        self,
        workspaces_dir: str | Path,
        *,
        remote: str = DEFAULT_REMOTE,
        git_factory: Callable[[Path], GitEngine] = GitEngine,
        logger: Any | None = None,
    ) -> None:
        self._workspaces_dir = Path(workspaces_dir).expanduser().resolve(strict=False)
        self._remote = remote
        self._git_factory = git_factory
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def workspaces_dir(self) -> Path:
        return self._workspaces_dir

    def path_for(self, repository: Path, branch_name: str) -> Path:
        return self._workspaces_dir / workspace_dir_name(repository.name, branch_name)

    def create(self, repository: str | Path, branch_name: str, base_branch: str) -> Workspace:
        """Create ``branch_name`` from ``base_branch`` in a fresh worktree.

        A leftover directory at the target path is removed first; when it was a
        worktree of ``branch_name`` whose branch survives removal, that branch
        is checked out again. Any other existing branch, or a branch checked
        out in another worktree, is a hard error raised before anything is
        removed.
        """

        repository_path = Path(repository).resolve()
        git = self._git_factory(repository_path)
        workspace_path = self.path_for(repository_path, branch_name)

        def fail(message: str) -> WorkspaceCreationError:
            self._logger.error(
                "workspace_create_failed",
                branch=branch_name,
                path=str(workspace_path),
                reason=message,
            )
            return WorkspaceCreationError(
                message, branch_name=branch_name, repository=repository_path.name
            )

        try:
            self._workspaces_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise fail(f"cannot create workspaces directory: {exc}") from exc

        try:
            # Every precondition is checked before anything at the target is removed.
            stale_record = next(
                (record for record in git.worktrees() if record.path == workspace_path),
                None,
            )
            stale_branch = stale_record.branch if stale_record and stale_record.branch else ""
            checked_out = git.worktree_for_branch(branch_name)
            if checked_out is not None and checked_out.path != workspace_path:
                raise fail(f"branch {branch_name} is already checked out at {checked_out.path}")
            if git.branch_exists(branch_name) and stale_branch != branch_name:
                raise fail(f"branch already exists: {branch_name}")

            start_point = self._start_point(git, base_branch)
            if start_point is None:
                raise fail(f"base branch not found locally or on {self._remote}: {base_branch}")

            if workspace_path.exists() or workspace_path.is_symlink():
                self._remove_stale(git, workspace_path, repository_path, stale_branch, start_point)

            if git.branch_exists(branch_name):
                git.prune_worktrees()
                git.attach_worktree(workspace_path, branch_name)
                self._logger.info(
                    "workspace_branch_reattached", path=str(workspace_path), branch=branch_name
                )
            else:
                git.add_worktree(workspace_path, branch_name, start_point)
        except GitEngineError as exc:
            raise fail(str(exc)) from exc

        workspace = Workspace(
            path=workspace_path,
            branch_name=branch_name,
            base_branch=base_branch,
            repository_path=repository_path,
            base_ref=start_point,
        )
        self._logger.info(
            "workspace_created",
            path=str(workspace_path),
            branch=branch_name,
            base_ref=start_point,
        )
        return workspace

    def remove(self, workspace: Workspace, *, delete_branch: bool = False) -> bool:
        """Remove ``workspace``; returns ``True`` when the directory is gone.

        Never raises. ``git worktree prune`` always runs. The branch is only
        deleted when asked and when it holds no commits beyond its base.
        """

        git = self._git_factory(workspace.repository_path)
        path = workspace.path
        try:
            result = git.remove_worktree(path)
            if path.exists() or path.is_symlink():
                self._logger.debug(
                    "workspace_directory_deleted", path=str(path), git_returncode=result.returncode
                )
                self._delete_directory(path)
        except (GitEngineError, OSError, ValueError) as exc:
            self._logger.warning("workspace_remove_failed", path=str(path), error=str(exc))
        finally:
            try:
                git.prune_worktrees()
            except GitEngineError as exc:
                self._logger.warning("worktree_prune_failed", error=str(exc))

        if delete_branch and workspace.branch_name:
            self._delete_branch_if_empty(git, workspace)

        removed = not (path.exists() or path.is_symlink())
        self._logger.info("workspace_removed", path=str(path), removed=removed)
        return removed

    def bulk_cleanup(self, repository: str | Path) -> tuple[Path, ...]:
        """Remove every ``<repo_name>-*`` directory under the workspaces directory."""

        repository_path = Path(repository).resolve()
        git = self._git_factory(repository_path)
        removed: list[Path] = []

        if self._workspaces_dir.is_dir():
            pattern = f"{repository_path.name}-*"
            for candidate in sorted(self._workspaces_dir.glob(pattern), key=lambda p: p.name):
                if not (candidate.is_dir() or candidate.is_symlink()):
                    continue
                try:
                    git.remove_worktree(candidate)
                    if candidate.exists() or candidate.is_symlink():
                        self._delete_directory(candidate)
                except (GitEngineError, OSError, ValueError) as exc:
                    self._logger.warning(
                        "workspace_remove_failed", path=str(candidate), error=str(exc)
                    )
                    continue
                removed.append(candidate)

        try:
            git.prune_worktrees()
        except GitEngineError as exc:
            self._logger.warning("worktree_prune_failed", error=str(exc))

        self._logger.info(
            "workspaces_swept",
            repository=repository_path.name,
            removed=len(removed),
        )
        return tuple(removed)

    def list_workspaces(self, repository: str | Path) -> tuple[Workspace, ...]:
        """Worktrees of ``repository`` that live under the workspaces directory."""

        repository_path = Path(repository).resolve()
        git = self._git_factory(repository_path)
        workspaces = [
            Workspace(
                path=record.path,
                branch_name=record.branch or "",
                base_branch="",
                repository_path=repository_path,
            )
            for record in git.worktrees()
            if is_within(record.path, self._workspaces_dir) and record.path.exists()
        ]
        workspaces.sort(key=lambda workspace: workspace.path.as_posix())
        return tuple(workspaces)

    def _remove_stale(
        self,
        git: GitEngine,
        workspace_path: Path,
        repository_path: Path,
        stale_branch: str,
        base_ref: str,
    ) -> None:
        self._logger.info("workspace_stale_removed", path=str(workspace_path))
        self.remove(
            Workspace(
                path=workspace_path,
                branch_name=stale_branch,
                base_branch=base_ref,
                repository_path=repository_path,
                base_ref=base_ref,
            ),
            delete_branch=bool(stale_branch),
        )

    def _start_point(self, git: GitEngine, base_branch: str) -> str | None:
        if git.branch_exists(base_branch):
            return base_branch
        if git.remote_branch_exists(self._remote, base_branch):
            return f"{self._remote}/{base_branch}"
        return None

    def _delete_directory(self, path: Path) -> None:
        # Containment is judged on the entry itself; a symlink is unlinked, never followed.
        if path.parent.resolve() != self._workspaces_dir.resolve():
            raise ValueError(f"refusing to delete path outside workspaces directory: {path}")
        safe_delete(path, self._workspaces_dir)

    def _delete_branch_if_empty(self, git: GitEngine, workspace: Workspace) -> None:
        branch = workspace.branch_name
        try:
            if not git.branch_exists(branch):
                return
            if git.worktree_for_branch(branch) is not None:
                self._logger.info("workspace_branch_kept", branch=branch, reason="checked out")
                return
            base_ref = workspace.base_ref or workspace.base_branch
            ahead = git.commits_ahead(base_ref, branch) if base_ref else 1
            if ahead > 0:
                self._logger.info(
                    "workspace_branch_kept", branch=branch, reason="has commits", commits=ahead
                )
                return
            git.delete_branch(branch, force=True)
            self._logger.info("workspace_branch_deleted", branch=branch)
        except GitEngineError as exc:
            self._logger.warning("workspace_branch_delete_failed", branch=branch, error=str(exc))


__all__ = ["Workspace", "WorkspaceManager", "workspace_dir_name"]
