"""
snowyowl — run orchestrator

File: src/snowyowl/control_plane/orchestrator.py

Purpose
- Walk every repository under the configured root, turn its task list into
  task groups and drive each group through workspace, backend, commit and
  publish steps.

Functional requirements
- Prerequisite failures and a missing required backend abort the run before
  any repository is touched.
- A failing group never stops its siblings or other repositories.
- When workspace cleanup is enabled it runs even if a group fails; the branch
  is kept.
- The repository's own checkout is left on the branch it started on.
"""

from __future__ import annotations

import shutil
from collections.abc import Callable, Collection
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from snowyowl.constants import FALLBACK_BASE_BRANCHES
from snowyowl.control_plane.group_state import GroupRun, GroupState
from snowyowl.control_plane.prerequisites import check_prerequisites, require_prerequisites
from snowyowl.errors import BackendExecutionError, GroupError, PrerequisiteError
from snowyowl.integration_plane.branch_naming import BranchNamer
from snowyowl.integration_plane.commit_pipeline import CommitOutcome, CommitPipeline
from snowyowl.integration_plane.git_engine import GitEngine, GitEngineError
from snowyowl.integration_plane.publish import (
    GitHubCli,
    PublishOutcome,
    PublishPipeline,
    PublishResult,
    build_pull_request_draft,
)
from snowyowl.integration_plane.workspace_manager import Workspace, WorkspaceManager
from snowyowl.observability import correlation_scope
from snowyowl.planning.task_parser import TaskParser
from snowyowl.planning.tasks import Task, TaskGroup, group_tasks
from snowyowl.spec_ingestion.spec_loader import SpecificationLoader
from snowyowl.synthesis_plane.dispatch import BackendDispatcher, DispatchMode
from snowyowl.synthesis_plane.language_model import LanguageModelClient
from snowyowl.synthesis_plane.prompt_templates import PromptTemplateEngine

if TYPE_CHECKING:
    from snowyowl.config.settings import Settings
    from snowyowl.synthesis_plane.language_model import TextCompleter


@dataclass(frozen=True, slots=True)
class GroupReport:
    lead_title: str
    state: GroupState
    branch_name: str | None = None
    workspace_path: Path | None = None
    implemented: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    publish: PublishResult | None = None
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.state is GroupState.FAILED


@dataclass(frozen=True, slots=True)
class RepositoryReport:
    name: str
    path: Path
    base_branch: str | None = None
    groups: tuple[GroupReport, ...] = ()
    skipped_reason: str | None = None
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None or any(group.failed for group in self.groups)


@dataclass(frozen=True, slots=True)
class RunReport:
    mode: DispatchMode
    repositories: tuple[RepositoryReport, ...] = ()
    dry_run: bool = False

    @property
    def groups(self) -> tuple[GroupReport, ...]:
        return tuple(group for repository in self.repositories for group in repository.groups)

    @property
    def succeeded(self) -> bool:
        return not any(repository.failed for repository in self.repositories)


@dataclass(slots=True)
class _GroupProgress:
    implemented: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    has_commits: bool = False
    error: str | None = None


class Orchestrator:
    """Single-threaded driver for one overnight run."""

    def __init__(
        self,
        settings: Settings,
        *,
        log_dir: Path | None = None,
        language_model: TextCompleter | None = None,
        templates: PromptTemplateEngine | None = None,
        git_factory: Callable[[Path], GitEngine] = GitEngine,
        hosting: GitHubCli | None = None,
        which: Callable[[str], str | None] = shutil.which,
        sleep: Callable[[float], None] | None = None,
        logger: Any | None = None,
    ) -> None:
        self._settings = settings
        self._log_dir = log_dir
        self._git_factory = git_factory
        self._which = which
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

        if language_model is None and settings.language_model.enabled:
            language_model = LanguageModelClient(settings.language_model, which=which)
        engine = templates if templates is not None else PromptTemplateEngine()
        self._templates = engine
        self._hosting = hosting if hosting is not None else GitHubCli(which=which)

        self._parser = TaskParser(language_model=language_model, templates=engine)
        self._spec_loader = SpecificationLoader()
        self._dispatcher = BackendDispatcher(
            settings.backend,
            timeout_seconds=settings.run.backend_timeout_seconds,
            templates=engine,
            which=which,
        )
        self._workspaces = WorkspaceManager(
            settings.paths.workspaces_dir,
            remote=settings.git.remote,
            git_factory=git_factory,
        )
        self._branch_namer = BranchNamer(language_model=language_model, templates=engine)
        self._commits = CommitPipeline(
            language_model=language_model,
            templates=engine,
            git_factory=git_factory,
            dry_run=settings.run.dry_run,
        )
        publish_kwargs: dict[str, Any] = {} if sleep is None else {"sleep": sleep}
        self._publisher = PublishPipeline(
            settings.git,
            settings.publish,
            dry_run=settings.run.dry_run,
            hosting=self._hosting,
            git_factory=git_factory,
            **publish_kwargs,
        )

    @property
    def workspaces(self) -> WorkspaceManager:
        return self._workspaces

    # Discovery

    def discover_repositories(self, only: Collection[str] | None = None) -> tuple[Path, ...]:
        """Sorted directories under the root that hold a task list."""

        root = self._settings.paths.root
        if not root.is_dir():
            raise PrerequisiteError(f"root directory does not exist: {root}")

        tasks_file = self._settings.paths.tasks_file
        found = [
            child
            for child in sorted(root.iterdir(), key=lambda path: path.name)
            if child.is_dir() and (child / tasks_file).is_file()
        ]
        if only:
            wanted = set(only)
            missing = sorted(wanted - {path.name for path in found})
            if missing:
                self._logger.warning("repositories_not_found", names=missing, root=str(root))
            found = [path for path in found if path.name in wanted]
        return tuple(found)

    def detect_base_branch(self, git: GitEngine) -> str | None:
        remote = self._settings.git.remote

        def exists(branch: str) -> bool:
            return git.branch_exists(branch) or git.remote_branch_exists(remote, branch)

        configured = self._settings.git.base_branch
        if configured and exists(configured):
            return configured

        remote_head = git.remote_default_branch(remote)
        if remote_head and exists(remote_head):
            return remote_head

        for candidate in FALLBACK_BASE_BRANCHES:
            if git.branch_exists(candidate):
                return candidate
        for candidate in FALLBACK_BASE_BRANCHES:
            if git.remote_branch_exists(remote, candidate):
                return candidate
        return None

    # Run

    def run(self, *, repositories: Collection[str] | None = None) -> RunReport:
        """Process every repository; raises only for run-level failures."""

        require_prerequisites(
            check_prerequisites(self._settings, which=self._which, hosting=self._hosting),
            logger=self._logger,
        )
        mode = self._dispatcher.preflight()
        paths = self.discover_repositories(repositories)
        self._logger.info(
            "run_started",
            root=str(self._settings.paths.root),
            repositories=len(paths),
            backend=self._settings.backend.name,
            mode=mode.value,
            dry_run=self._settings.run.dry_run,
        )

        reports: list[RepositoryReport] = []
        for path in paths:
            with correlation_scope(repository=path.name):
                reports.append(self.process_repository(path))

        report = RunReport(mode=mode, repositories=tuple(reports), dry_run=self._settings.run.dry_run)
        self._logger.info(
            "run_finished",
            succeeded=report.succeeded,
            repositories=len(report.repositories),
            groups=len(report.groups),
            failed_groups=sum(1 for group in report.groups if group.failed),
        )
        return report

    def process_repository(self, path: Path) -> RepositoryReport:
        git = self._git_factory(path)
        if not git.is_repository():
            self._logger.warning("repository_skipped", path=str(path), reason="not a git repository")
            return RepositoryReport(name=path.name, path=path, skipped_reason="not a git repository")

        base_branch = self.detect_base_branch(git)
        if base_branch is None:
            message = "no base branch found locally or on the remote"
            self._logger.error("repository_skipped", path=str(path), reason=message)
            return RepositoryReport(name=path.name, path=path, error=message)

        tasks_path = path / self._settings.paths.tasks_file
        try:
            document = tasks_path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            self._logger.error("tasks_file_unreadable", path=str(tasks_path), error=str(exc))
            return RepositoryReport(
                name=path.name, path=path, base_branch=base_branch, error=str(exc)
            )

        groups = group_tasks(self._parser.parse(document))
        if not groups:
            self._logger.info("repository_skipped", path=str(path), reason="no pending tasks")
            return RepositoryReport(
                name=path.name, path=path, base_branch=base_branch, skipped_reason="no pending tasks"
            )

        self._logger.info(
            "repository_started",
            path=str(path),
            base_branch=base_branch,
            groups=len(groups),
            tasks=sum(len(group.tasks) for group in groups),
        )
        repository_log = self._repository_log(path.name)
        original_branch = git.current_branch()
        group_reports: list[GroupReport] = []
        try:
            for group in groups:
                group_reports.append(self._run_group(path, group, base_branch, repository_log))
        finally:
            self._restore_branch(git, original_branch)

        return RepositoryReport(
            name=path.name,
            path=path,
            base_branch=base_branch,
            groups=tuple(group_reports),
        )

    # Groups

    def _run_group(
        self,
        repository: Path,
        group: TaskGroup,
        base_branch: str,
        repository_log: Path | None,
    ) -> GroupReport:
        lead = group.lead_task
        run = GroupRun(lead_title=lead.title)
        progress = _GroupProgress()
        branch = self._branch_namer.name_for(lead.title)
        workspace: Workspace | None = None
        publish: PublishResult | None = None

        with correlation_scope(branch=branch):
            try:
                try:
                    workspace = self._workspaces.create(repository, branch, base_branch)
                except GroupError as exc:
                    self._logger.error(
                        "group_skipped",
                        lead=lead.title,
                        tasks=list(group.titles),
                        error=str(exc),
                    )
                    run.fail()
                    return GroupReport(
                        lead_title=lead.title,
                        state=run.state,
                        branch_name=branch,
                        skipped=group.titles,
                        error=str(exc),
                    )
                run.advance(GroupState.WORKSPACE_READY)

                self._implement_group(run, group, workspace, repository, repository_log, progress)
                if not run.finished:
                    publish = self._publish_group(
                        run, group, workspace, base_branch, repository_log, progress
                    )
            except (GitEngineError, OSError) as exc:
                progress.error = str(exc)
                self._logger.error("group_failed", lead=lead.title, error=str(exc))
                if not run.finished:
                    run.fail()
            finally:
                if workspace is not None and self._settings.publish.cleanup_workspaces:
                    self._workspaces.remove(workspace, delete_branch=False)

        self._logger.info(
            "group_finished",
            lead=lead.title,
            branch=branch,
            state=run.state.value,
            implemented=len(progress.implemented),
            skipped=len(progress.skipped),
        )
        return GroupReport(
            lead_title=lead.title,
            state=run.state,
            branch_name=branch,
            workspace_path=workspace.path if workspace is not None else None,
            implemented=tuple(progress.implemented),
            skipped=tuple(progress.skipped),
            publish=publish,
            error=progress.error,
        )

    def _implement_group(
        self,
        run: GroupRun,
        group: TaskGroup,
        workspace: Workspace,
        repository: Path,
        repository_log: Path | None,
        progress: _GroupProgress,
    ) -> None:
        tasks = group.tasks
        for index, task in enumerate(tasks):
            with correlation_scope(task=task.title):
                run.advance(GroupState.IMPLEMENTING)
                member_of = None if task is group.lead_task else group.lead_task.title
                try:
                    outcome = self._implement_task(
                        task, workspace, repository, repository_log, member_of=member_of
                    )
                except GroupError as exc:
                    progress.error = str(exc)
                    progress.skipped.extend(remaining.title for remaining in tasks[index + 1 :])
                    self._logger.error(
                        "group_tasks_skipped",
                        failed_task=task.title,
                        skipped=list(progress.skipped),
                        error=str(exc),
                    )
                    run.fail()
                    return
                progress.has_commits = progress.has_commits or outcome.committed
                progress.implemented.append(task.title)
                run.advance(GroupState.COMMITTED)

    def _implement_task(
        self,
        task: Task,
        workspace: Workspace,
        repository: Path,
        repository_log: Path | None,
        *,
        member_of: str | None,
    ) -> CommitOutcome:
        specification = (
            self._spec_loader.load(repository, task.specification_link)
            if task.specification_link
            else None
        )
        result = self._dispatcher.implement(
            task,
            workspace,
            specification,
            member_of=member_of,
            repository_log=repository_log,
        )
        if not result.succeeded:
            raise BackendExecutionError(
                task.title,
                result.exit_code,
                str(result.log_path) if result.log_path is not None else None,
            )
        return self._commits.commit(workspace, task.title)

    def _publish_group(
        self,
        run: GroupRun,
        group: TaskGroup,
        workspace: Workspace,
        base_branch: str,
        repository_log: Path | None,
        progress: _GroupProgress,
    ) -> PublishResult:
        draft = build_pull_request_draft(
            group.lead_task.title,
            progress.implemented,
            head_branch=workspace.branch_name,
            base_branch=base_branch,
            templates=self._templates,
        )
        result = self._publisher.publish(
            workspace,
            draft,
            has_commits=progress.has_commits,
            repository_log=repository_log,
        )
        if result.outcome.failed:
            progress.error = result.reason
            run.fail()
        elif result.outcome is PublishOutcome.DONE_PUBLISHED:
            run.advance(GroupState.PUBLISHED)
        else:
            run.advance(GroupState.LOCAL_ONLY)
        return result

    def _repository_log(self, repository_name: str) -> Path | None:
        if self._log_dir is None:
            return None
        return self._log_dir / f"{repository_name}.log"

    def _restore_branch(self, git: GitEngine, original_branch: str | None) -> None:
        if original_branch is None:
            return
        try:
            if git.current_branch() != original_branch:
                git.checkout(original_branch)
                self._logger.info("repository_branch_restored", branch=original_branch)
        except GitEngineError as exc:
            self._logger.warning(
                "repository_branch_restore_failed", branch=original_branch, error=str(exc)
            )


__all__ = [
    "GroupReport",
    "Orchestrator",
    "RepositoryReport",
    "RunReport",
]
