"""
snowyowl — integration plane

File: src/snowyowl/integration_plane/__init__.py

Purpose
- Git operations, per-group worktrees, branch naming, commits and publishing.

Functional requirements
- A branch is never checked out in two worktrees at once.
- Workspace removal is always followed by ``git worktree prune``.
"""

from snowyowl.integration_plane.branch_naming import (
    BranchNamer,
    clean_slug,
    fallback_slug,
    sanitize_title,
)
from snowyowl.integration_plane.commit_pipeline import (
    CommitOutcome,
    CommitPipeline,
    clean_commit_message,
    fallback_commit_message,
)
from snowyowl.integration_plane.git_engine import (
    CommandResult,
    GitCommandError,
    GitEngine,
    GitEngineError,
    WorktreeRecord,
    parse_worktree_porcelain,
)
from snowyowl.integration_plane.publish import (
    GitHubCli,
    PublishOutcome,
    PublishPipeline,
    PublishResult,
    PullRequestDraft,
    build_pull_request_draft,
)
from snowyowl.integration_plane.workspace_manager import (
    Workspace,
    WorkspaceManager,
    workspace_dir_name,
)

__all__ = [
    "BranchNamer",
    "CommandResult",
    "CommitOutcome",
    "CommitPipeline",
    "GitCommandError",
    "GitEngine",
    "GitEngineError",
    "GitHubCli",
    "PublishOutcome",
    "PublishPipeline",
    "PublishResult",
    "PullRequestDraft",
    "Workspace",
    "WorkspaceManager",
    "WorktreeRecord",
    "build_pull_request_draft",
    "clean_commit_message",
    "clean_slug",
    "fallback_commit_message",
    "fallback_slug",
    "parse_worktree_porcelain",
    "sanitize_title",
    "workspace_dir_name",
]
