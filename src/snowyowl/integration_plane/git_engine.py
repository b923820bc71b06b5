"""Thin deterministic wrapper around the git CLI for one repository."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence


class GitEngineError(RuntimeError):
    """Base error for git engine failures."""


class GitCommandError(GitEngineError):
    """Raised when a git subprocess command exits non-zero."""

    def __init__(
        self,
        *,
        command: Sequence[str],
        returncode: int,
        stdout: str,
        stderr: str,
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        message = f"git command failed ({returncode}): {' '.join(command)}"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Normalized subprocess result for deterministic git wrapper behavior."""

    command: tuple[str, ...]
    cwd: str
    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        return "".join(part for part in (self.stdout, self.stderr) if part)


@dataclass(frozen=True, slots=True)
class WorktreeRecord:
    """One entry of ``git worktree list --porcelain``."""

    path: Path
    head: str | None
    branch: str | None
    prunable: bool = False


class GitEngine:
    """Git operations needed by the task pipeline, bound to one repository."""

    def __init__(
        self,
        repo_path: Path | str,
        *,
        env_overrides: Mapping[str, str] | None = None,
    ) -> None:
        self.repo_path = Path(repo_path).resolve()
        self._env_overrides = dict(env_overrides or {})

    # Repository state

    def is_repository(self) -> bool:
        if not self.repo_path.is_dir():
            return False
        return self._run_git(["rev-parse", "--git-dir"], check=False).returncode == 0

    def current_branch(self) -> str | None:
        """Checked-out branch of the main working copy, ``None`` when detached."""
        branch = self._run_git(["branch", "--show-current"], check=False).stdout.strip()
        return branch or None

    def checkout(self, branch: str) -> None:
        self._run_git(["checkout", branch])

    def branch_exists(self, branch: str) -> bool:
        return self._ref_exists(f"refs/heads/{branch}")

    def remote_branch_exists(self, remote: str, branch: str) -> bool:
        return self._ref_exists(f"refs/remotes/{remote}/{branch}")

    def remote_url(self, remote: str) -> str | None:
        result = self._run_git(["remote", "get-url", remote], check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def remote_default_branch(self, remote: str) -> str | None:
        """Branch that ``<remote>/HEAD`` points at, if the remote HEAD is known."""
        result = self._run_git(
            ["symbolic-ref", "--quiet", "--short", f"refs/remotes/{remote}/HEAD"], check=False
        )
        target = result.stdout.strip()
        if result.returncode != 0 or not target:
            return None
        prefix = f"{remote}/"
        return target[len(prefix) :] if target.startswith(prefix) else target

    def commits_ahead(self, base_ref: str, branch: str) -> int:
        """Number of commits on ``branch`` that are not reachable from ``base_ref``."""
        output = self._run_git(["rev-list", "--count", f"{base_ref}..{branch}"]).stdout
        return int(output.strip() or "0")

    def delete_branch(self, branch: str, *, force: bool = False) -> None:
        self._run_git(["branch", "-D" if force else "-d", branch])

    def rev_parse(self, ref: str, *, cwd: Path | None = None) -> str:
        return self._run_git(["rev-parse", ref], cwd=cwd).stdout.strip()

    # Worktrees

    def add_worktree(self, path: Path, branch: str, start_point: str) -> CommandResult:
        """Create ``branch`` from ``start_point`` and check it out at ``path``."""
        return self._run_git(["worktree", "add", "-b", branch, str(path), start_point])

    def attach_worktree(self, path: Path, branch: str) -> CommandResult:
        """Check out the existing ``branch`` at ``path``."""
        return self._run_git(["worktree", "add", str(path), branch])

    def remove_worktree(self, path: Path) -> CommandResult:
        return self._run_git(["worktree", "remove", "--force", str(path)], check=False)

    def prune_worktrees(self) -> CommandResult:
        return self._run_git(["worktree", "prune"], check=False)

    def worktrees(self) -> tuple[WorktreeRecord, ...]:
        output = self._run_git(["worktree", "list", "--porcelain"], check=False).stdout
        return parse_worktree_porcelain(output)

    def worktree_for_branch(self, branch: str) -> WorktreeRecord | None:
        for record in self.worktrees():
            if record.branch == branch:
                return record
        return None

    # Commits and publishing, run inside a worktree

    def stage_all(self, cwd: Path) -> None:
        self._run_git(["add", "--all"], cwd=cwd)

    def has_staged_changes(self, cwd: Path) -> bool:
        result = self._run_git(["diff", "--cached", "--quiet"], cwd=cwd, check=False)
        if result.returncode not in (0, 1):
            raise GitCommandError(
                command=result.command,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result.returncode == 1

    def commit(self, cwd: Path, message: str) -> str:
        self._run_git(["commit", "--no-verify", "-m", message], cwd=cwd)
        return self.rev_parse("HEAD", cwd=cwd)

    def push(self, cwd: Path, remote: str, branch: str) -> CommandResult:
        return self._run_git(["push", "-u", remote, branch], cwd=cwd)

    def _ref_exists(self, ref: str) -> bool:
        return self._run_git(["show-ref", "--verify", "--quiet", ref], check=False).returncode == 0

    def _run_git(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        check: bool = True,
    ) -> CommandResult:
        command = ("git", *args)
        run_cwd = (cwd if cwd is not None else self.repo_path).resolve()
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        env.update(self._env_overrides)

        try:
            completed = subprocess.run(
                command,
                cwd=run_cwd,
                env=env,
                text=True,
                capture_output=True,
                check=False,
            )
        except OSError as exc:
            raise GitEngineError(f"unable to run git in {run_cwd}: {exc}") from exc

        result = CommandResult(
            command=command,
            cwd=run_cwd.as_posix(),
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )

        if check and result.returncode != 0:
            raise GitCommandError(
                command=result.command,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )

        return result


def parse_worktree_porcelain(output: str) -> tuple[WorktreeRecord, ...]:
    records: list[WorktreeRecord] = []
    fields: dict[str, str] = {}

    def flush() -> None:
        path = fields.get("worktree")
        if path is None:
            return
        branch_ref = fields.get("branch")
        branch = branch_ref.removeprefix("refs/heads/") if branch_ref else None
        records.append(
            WorktreeRecord(
                path=Path(path).resolve(strict=False),
                head=fields.get("HEAD"),
                branch=branch,
                prunable="prunable" in fields,
            )
        )

    for line in output.splitlines():
        if not line.strip():
            flush()
            fields = {}
            continue
        key, _, value = line.partition(" ")
        fields[key] = value.strip()
    flush()
    return tuple(records)


__all__ = [
    "CommandResult",
    "GitCommandError",
    "GitEngine",
    "GitEngineError",
    "WorktreeRecord",
    "parse_worktree_porcelain",
]
