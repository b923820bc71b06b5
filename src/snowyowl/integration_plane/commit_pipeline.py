"""Stage and commit backend output in a task-group workspace."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

import structlog

from snowyowl.constants import DEFAULT_BRANCH_TYPE
from snowyowl.errors import CommitError
from snowyowl.integration_plane.git_engine import GitEngine, GitEngineError
from snowyowl.synthesis_plane.language_model import FunctionStrategy, resolve_text
from snowyowl.synthesis_plane.prompt_templates import COMMIT_MESSAGE, PromptTemplateEngine

if TYPE_CHECKING:
    from snowyowl.integration_plane.workspace_manager import Workspace
    from snowyowl.synthesis_plane.language_model import TextCompleter

_CONVENTIONAL_RE: Final[re.Pattern[str]] = re.compile(r"^[a-z]+(\(.+\))?!?: ")


@dataclass(frozen=True, slots=True)
class CommitOutcome:
    committed: bool
    message: str = ""
    commit_sha: str | None = None
    dry_run: bool = False


def fallback_commit_message(title: str) -> str:
    return f"{DEFAULT_BRANCH_TYPE}: {title.strip().lower()}"


def clean_commit_message(answer: str) -> str | None:
    """First non-blank line of ``answer`` when it is a conventional-commit subject."""

    for line in answer.splitlines():
        subject = line.strip().strip("`")
        if not subject:
            continue
        return subject if _CONVENTIONAL_RE.match(subject) else None
    return None


class CommitPipeline:
    """Commit whatever a backend changed, with a conventional message."""

    def __init__(
        self,
        *,
        language_model: TextCompleter | None = None,
        templates: PromptTemplateEngine | None = None,
        git_factory: Callable[[Path], GitEngine] = GitEngine,
        dry_run: bool = False,
        logger: Any | None = None,
    ) -> None:
        self._language_model = language_model
        self._templates = templates if templates is not None else PromptTemplateEngine()
        self._git_factory = git_factory
        self._dry_run = dry_run
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def message_for(self, title: str) -> str:
        return resolve_text(
            FunctionStrategy(
                name="commit_message",
                primary_fn=lambda: self._ask_language_model(title),
                fallback_fn=lambda: fallback_commit_message(title),
            ),
            logger=self._logger,
        ).text

    def commit(self, workspace: Workspace, task_title: str) -> CommitOutcome:
        """Stage everything and commit; ``committed=False`` when nothing changed.

        Raises ``CommitError`` when staging or committing fails.
        """

        if self._dry_run:
            self._logger.info("commit_skipped", reason="dry run", task=task_title)
            return CommitOutcome(committed=False, dry_run=True)

        git = self._git_factory(workspace.repository_path)
        try:
            git.stage_all(workspace.path)
            if not git.has_staged_changes(workspace.path):
                self._logger.info("commit_skipped", reason="no changes", task=task_title)
                return CommitOutcome(committed=False)

            message = self.message_for(task_title)
            sha = git.commit(workspace.path, message)
        except GitEngineError as exc:
            self._logger.error("commit_failed", task=task_title, error=str(exc))
            raise CommitError(f"commit failed for task {task_title!r}: {exc}") from exc

        self._logger.info("commit_created", task=task_title, sha=sha, message=message)
        return CommitOutcome(committed=True, message=message, commit_sha=sha)

    def _ask_language_model(self, title: str) -> str | None:
        if self._language_model is None:
            return None
        prompt = self._templates.render(COMMIT_MESSAGE, variables={"task_title": title}).prompt
        answer = self._language_model.complete(prompt)
        return clean_commit_message(answer) if answer else None


__all__ = [
    "CommitOutcome",
    "CommitPipeline",
    "clean_commit_message",
    "fallback_commit_message",
]
