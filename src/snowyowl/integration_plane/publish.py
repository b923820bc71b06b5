"""
snowyowl — branch publishing

File: src/snowyowl/integration_plane/publish.py

Purpose
- Push a task-group branch and open a pull request through the ``gh`` CLI.

Functional requirements
- Outcomes: Done-LocalOnly (no matching remote, PR creation disabled, nothing
  committed, dry run), Done-Published, Failed-Push, Failed-PublishPartial.
- Waits a configurable settling delay between push and pull request creation.
- Never deletes the branch; a failed push or PR leaves it for manual recovery.
- Raw push and ``gh`` output is appended to the repository log file.
"""

from __future__ import annotations

import shutil
import subprocess
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

import structlog

from snowyowl.errors import PublishError, PublishPartialError, PushError
from snowyowl.integration_plane.git_engine import CommandResult, GitEngine, GitEngineError
from snowyowl.synthesis_plane.prompt_templates import PULL_REQUEST_BODY, PromptTemplateEngine
from snowyowl.utils.fs import append_text

if TYPE_CHECKING:
    from snowyowl.config.settings import GitSettings, PublishSettings
    from snowyowl.integration_plane.workspace_manager import Workspace

GH_EXECUTABLE: Final[str] = "gh"


@dataclass(frozen=True, slots=True)
class PullRequestDraft:
    title: str
    body: str
    head_branch: str
    base_branch: str


def build_pull_request_draft(
    lead_title: str,
    implemented_titles: Sequence[str],
    *,
    head_branch: str,
    base_branch: str,
    templates: PromptTemplateEngine | None = None,
) -> PullRequestDraft:
    """Title is the lead task; body lists every implemented task and a review checklist."""

    engine = templates if templates is not None else PromptTemplateEngine()
    body = engine.render(
        PULL_REQUEST_BODY, variables={"task_titles": list(implemented_titles)}
    ).prompt
    return PullRequestDraft(
        title=lead_title,
        body=body,
        head_branch=head_branch,
        base_branch=base_branch,
    )


class PublishOutcome(StrEnum):
    DONE_LOCAL_ONLY = "done_local_only"
    DONE_PUBLISHED = "done_published"
    FAILED_PUSH = "failed_push"
    FAILED_PUBLISH_PARTIAL = "failed_publish_partial"

    @property
    def failed(self) -> bool:
        return self in {PublishOutcome.FAILED_PUSH, PublishOutcome.FAILED_PUBLISH_PARTIAL}


@dataclass(frozen=True, slots=True)
class PublishResult:
    outcome: PublishOutcome
    reason: str = ""
    pull_request_url: str | None = None
    error: PublishError | None = None


class GitHubCli:
    """Code-hosting collaborator backed by the ``gh`` command-line tool."""

    def __init__(
        self,
        *,
        executable: str = GH_EXECUTABLE,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        self._executable = executable
        self._which = which

    @property
    def executable(self) -> str:
        return self._executable

    def executable_path(self) -> str | None:
        return self._which(self._executable)

    def auth_status(self) -> CommandResult:
        return self._run(["auth", "status"], cwd=Path.cwd())

    def create_pull_request(self, repository: Path, draft: PullRequestDraft) -> CommandResult:
        return self._run(
            [
                "pr",
                "create",
                "--base",
                draft.base_branch,
                "--head",
                draft.head_branch,
                "--title",
                draft.title,
                "--body",
                draft.body,
            ],
            cwd=repository,
        )

    def _run(self, args: Sequence[str], *, cwd: Path) -> CommandResult:
        executable = self.executable_path() or self._executable
        command = (executable, *args)
        try:
            completed = subprocess.run(
                command,
                cwd=cwd,
                text=True,
                capture_output=True,
                check=False,
            )
        except OSError as exc:
            return CommandResult(
                command=command, cwd=str(cwd), returncode=127, stdout="", stderr=str(exc)
            )
        return CommandResult(
            command=command,
            cwd=str(cwd),
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )


class PublishPipeline:
    """Drive one branch through push and pull request creation."""

    def __init__(
        self,
        git_settings: GitSettings,
        publish_settings: PublishSettings,
        *,
        dry_run: bool = False,
        hosting: GitHubCli | None = None,
        git_factory: Callable[[Path], GitEngine] = GitEngine,
        sleep: Callable[[float], None] = time.sleep,
        logger: Any | None = None,
    ) -> None:
        self._git = git_settings
        self._publish = publish_settings
        self._dry_run = dry_run
        self._hosting = hosting if hosting is not None else GitHubCli()
        self._git_factory = git_factory
        self._sleep = sleep
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def has_matching_remote(self, repository: Path) -> bool:
        url = self._git_factory(repository).remote_url(self._git.remote)
        if url is None:
            return False
        host = self._git.remote_host
        return not host or host in url

    def publish(
        self,
        workspace: Workspace,
        draft: PullRequestDraft,
        *,
        has_commits: bool,
        repository_log: Path | None = None,
    ) -> PublishResult:
        branch = workspace.branch_name
        repository = workspace.repository_path

        if self._dry_run:
            self._logger.info(
                "publish_dry_run",
                branch=branch,
                would_push=self._publish.create_pr and self.has_matching_remote(repository),
                remote=self._git.remote,
                base=draft.base_branch,
                title=draft.title,
            )
            return self._local_only(branch, "dry run")
        if not has_commits:
            return self._local_only(branch, "nothing to publish")
        if not self.has_matching_remote(repository):
            return self._local_only(
                branch, f"no {self._git.remote} remote on {self._git.remote_host or 'any host'}"
            )
        if not self._publish.create_pr:
            return self._local_only(branch, "pull request creation disabled")

        git = self._git_factory(repository)
        try:
            pushed = git.push(workspace.path, self._git.remote, branch)
        except GitEngineError as exc:
            self._append_log(repository_log, f"$ git push -u {self._git.remote} {branch}", str(exc))
            error = PushError(
                f"push failed for {branch}: {exc}",
                branch_name=branch,
                recovery=f"git push -u {self._git.remote} {branch}",
            )
            self._logger.error("publish_push_failed", branch=branch, error=str(exc))
            return PublishResult(
                outcome=PublishOutcome.FAILED_PUSH, reason=str(error), error=error
            )
        self._append_log(repository_log, f"$ git push -u {self._git.remote} {branch}", pushed.output)
        self._logger.info("publish_pushed", branch=branch, remote=self._git.remote)

        if self._publish.settle_seconds > 0:
            self._sleep(self._publish.settle_seconds)

        created = self._hosting.create_pull_request(repository, draft)
        self._append_log(repository_log, f"$ {self._hosting.executable} pr create", created.output)
        if created.returncode != 0:
            error = PublishPartialError(
                f"pull request creation failed for {branch}: {created.stderr.strip()}",
                branch_name=branch,
                recovery=(
                    f"{self._hosting.executable} pr create --base {draft.base_branch} "
                    f"--head {branch}"
                ),
            )
            self._logger.error(
                "publish_pull_request_failed",
                branch=branch,
                returncode=created.returncode,
                recovery=error.recovery,
            )
            return PublishResult(
                outcome=PublishOutcome.FAILED_PUBLISH_PARTIAL, reason=str(error), error=error
            )

        url = _last_url(created.stdout)
        self._logger.info("publish_pull_request_created", branch=branch, url=url)
        return PublishResult(
            outcome=PublishOutcome.DONE_PUBLISHED, reason="pull request created", pull_request_url=url
        )

    def _local_only(self, branch: str, reason: str) -> PublishResult:
        self._logger.info("publish_local_only", branch=branch, reason=reason)
        return PublishResult(outcome=PublishOutcome.DONE_LOCAL_ONLY, reason=reason)

    def _append_log(self, repository_log: Path | None, header: str, output: str) -> None:
        if repository_log is None:
            return
        try:
            append_text(repository_log, f"{header}\n{output}")
        except OSError as exc:
            self._logger.warning("repository_log_write_failed", path=str(repository_log), error=str(exc))


def _last_url(output: str) -> str | None:
    for line in reversed(output.splitlines()):
        candidate = line.strip()
        if candidate.startswith(("https://", "http://")):
            return candidate
    return None


__all__ = [
    "GH_EXECUTABLE",
    "GitHubCli",
    "PublishOutcome",
    "PublishPipeline",
    "PublishResult",
    "PullRequestDraft",
    "build_pull_request_draft",
]
