"""
snowyowl — end-to-end orchestrator scenarios

File: tests/integration/test_orchestrator_scenarios.py

Purpose
- Drive full runs over real repositories with fake backend and ``gh``
  executables on ``PATH``.
- Cover marker fallback, backend failure isolation, local-only completion,
  workspace cleanup, partial publish and the happy publish path.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import yaml
from structlog.testing import capture_logs

from snowyowl.config import Settings
from snowyowl.control_plane.group_state import GroupState
from snowyowl.control_plane.orchestrator import Orchestrator
from snowyowl.errors import BackendUnavailableError, PrerequisiteError
from snowyowl.integration_plane.git_engine import GitEngine
from snowyowl.integration_plane.publish import PublishOutcome
from snowyowl.synthesis_plane.dispatch import DispatchMode

pytestmark = pytest.mark.integration

# Appends one line per task to a file in the worktree so every task commits.
_WORKING_BACKEND = 'echo "implemented" >> implemented.txt\necho "backend ok"'

_FAILING_ON_TESTS_BACKEND = (
    'case "$*" in\n'
    '  *"Write tests for X"*) echo "compilation failed" >&2; exit 3 ;;\n'
    "esac\n"
    'echo "implemented" >> implemented.txt'
)

_TWO_GROUPS = """# Tasks

- [ ] Add X
  - [ ] Write tests for X
  - [ ] Document X
- [x] Already done
- [ ] Fix Y
"""


def _branch_files(run_git: Callable[..., Any], repo: Path, branch: str) -> list[str]:
    output = run_git(repo, "ls-tree", "-r", "--name-only", branch).stdout
    return sorted(output.splitlines())


def _commit_count(run_git: Callable[..., Any], repo: Path, branch: str) -> int:
    return int(run_git(repo, "rev-list", "--count", f"main..{branch}").stdout.strip())


def test_missing_optional_backend_commits_markers(
    make_repo: Callable[..., Path],
    make_settings: Callable[..., Settings],
    run_git: Callable[..., Any],
) -> None:
    repo = make_repo(tasks="- [ ] Add X\n  - [ ] Write tests\n")
    settings = make_settings(
        {"backends": {"copilot": {"executable": "copilot-not-installed-anywhere"}}}
    )

    report = Orchestrator(settings).run()

    assert report.mode is DispatchMode.MARKER
    assert report.succeeded
    (group,) = report.groups
    assert group.state is GroupState.LOCAL_ONLY
    assert group.implemented == ("Add X", "Write tests")
    assert group.branch_name is not None
    assert group.branch_name.startswith("feat/add-x-")
    files = _branch_files(run_git, repo, group.branch_name)
    assert ".pending_tasks/Add_X.yaml" in files
    assert ".pending_tasks/Write_tests.yaml" in files
    marker = yaml.safe_load(
        run_git(repo, "show", f"{group.branch_name}:.pending_tasks/Add_X.yaml").stdout
    )
    assert marker["task"] == "Add X"
    assert _commit_count(run_git, repo, group.branch_name) == 2


def test_missing_required_backend_aborts_before_any_repository(
    make_repo: Callable[..., Path],
    make_settings: Callable[..., Settings],
    tmp_path: Path,
) -> None:
    make_repo(tasks="- [ ] Add X\n")
    settings = make_settings(
        {
            "backend": {"name": "claude"},
            "backends": {"claude": {"executable": "claude-not-installed-anywhere"}},
        }
    )

    with pytest.raises(BackendUnavailableError, match="claude"):
        Orchestrator(settings).run()

    assert not (tmp_path / "worktrees").exists()


def test_backend_failure_fails_only_its_group(
    make_repo: Callable[..., Path],
    make_settings: Callable[..., Settings],
    fake_bin: Callable[[str, str], Path],
    run_git: Callable[..., Any],
    tmp_path: Path,
) -> None:
    fake_bin("claude", _FAILING_ON_TESTS_BACKEND)
    repo = make_repo(tasks=_TWO_GROUPS)
    settings = make_settings({"backend": {"name": "claude"}})
    log_dir = tmp_path / "logs" / "run-1"

    with capture_logs() as logs:
        report = Orchestrator(settings, log_dir=log_dir).run()

    assert not report.succeeded
    first, second = report.groups
    assert first.state is GroupState.FAILED
    assert first.implemented == ("Add X",)
    assert first.skipped == ("Document X",)
    assert first.error is not None
    assert "exit code 3" in first.error
    assert first.publish is None
    assert first.branch_name is not None
    assert _commit_count(run_git, repo, first.branch_name) == 1

    assert second.state is GroupState.LOCAL_ONLY
    assert second.implemented == ("Fix Y",)
    assert second.branch_name is not None
    assert second.branch_name.startswith("feat/fix-y-")

    repository_log = (log_dir / "repo.log").read_text(encoding="utf-8")
    assert "compilation failed" in repository_log
    assert "--- task: Fix Y" in repository_log
    skipped = next(entry for entry in logs if entry["event"] == "group_tasks_skipped")
    assert skipped["skipped"] == ["Document X"]


def test_local_only_run_keeps_workspace_and_base_checkout(
    make_repo: Callable[..., Path],
    make_settings: Callable[..., Settings],
    fake_bin: Callable[[str, str], Path],
    run_git: Callable[..., Any],
) -> None:
    fake_bin("claude", _WORKING_BACKEND)
    repo = make_repo(tasks="- [ ] Fix Y\n")
    settings = make_settings({"backend": {"name": "claude"}, "publish": {"create_pr": True}})

    report = Orchestrator(settings).run()

    (group,) = report.groups
    assert group.state is GroupState.LOCAL_ONLY
    assert group.publish is not None
    assert group.publish.outcome is PublishOutcome.DONE_LOCAL_ONLY
    assert group.publish.reason == "no origin remote on any host"
    assert group.workspace_path is not None
    assert (group.workspace_path / "implemented.txt").is_file()
    assert GitEngine(repo).current_branch() == "main"
    assert "implemented.txt" not in _branch_files(run_git, repo, "main")


def test_cleanup_removes_workspace_but_keeps_branch(
    make_repo: Callable[..., Path],
    make_settings: Callable[..., Settings],
    fake_bin: Callable[[str, str], Path],
) -> None:
    fake_bin("claude", _FAILING_ON_TESTS_BACKEND)
    repo = make_repo(tasks=_TWO_GROUPS)
    settings = make_settings(
        {"backend": {"name": "claude"}, "publish": {"cleanup_workspaces": True}}
    )

    report = Orchestrator(settings).run()

    for group in report.groups:
        assert group.workspace_path is not None
        assert not group.workspace_path.exists()
        assert group.branch_name is not None
        assert GitEngine(repo).branch_exists(group.branch_name)
    assert [group.state for group in report.groups] == [GroupState.FAILED, GroupState.LOCAL_ONLY]


def test_pull_request_failure_after_push_is_partial(
    make_repo: Callable[..., Path],
    make_settings: Callable[..., Settings],
    fake_bin: Callable[[str, str], Path],
    run_git: Callable[..., Any],
    tmp_path: Path,
) -> None:
    fake_bin("claude", _WORKING_BACKEND)
    fake_bin(
        "gh",
        'if [ "$1" = "auth" ]; then exit 0; fi\n'
        'echo "pull request create failed: permission denied" >&2\nexit 1',
    )
    repo = make_repo(tasks="- [ ] Add X\n", with_remote=True)
    settings = make_settings({"backend": {"name": "claude"}, "publish": {"create_pr": True}})

    report = Orchestrator(settings).run()

    assert not report.succeeded
    (group,) = report.groups
    assert group.state is GroupState.FAILED
    assert group.publish is not None
    assert group.publish.outcome is PublishOutcome.FAILED_PUBLISH_PARTIAL
    assert group.branch_name is not None
    remote = tmp_path / "remotes" / "repo.git"
    shown = run_git(remote, "show-ref", "--verify", f"refs/heads/{group.branch_name}", check=False)
    assert shown.returncode == 0
    assert GitEngine(repo).branch_exists(group.branch_name)


def test_successful_publish_reports_pull_request(
    make_repo: Callable[..., Path],
    make_settings: Callable[..., Settings],
    fake_bin: Callable[[str, str], Path],
) -> None:
    fake_bin("claude", _WORKING_BACKEND)
    fake_bin(
        "gh",
        'if [ "$1" = "auth" ]; then exit 0; fi\n'
        'echo "https://github.com/aves/repo/pull/1"',
    )
    make_repo(tasks="- [ ] Add X\n  - [ ] Write tests\n", with_remote=True)
    settings = make_settings(
        {
            "backend": {"name": "claude"},
            "publish": {"create_pr": True, "settle_seconds": 5.0},
        }
    )
    waits: list[float] = []

    report = Orchestrator(settings, sleep=waits.append).run()

    assert report.succeeded
    (group,) = report.groups
    assert group.state is GroupState.PUBLISHED
    assert group.publish is not None
    assert group.publish.pull_request_url == "https://github.com/aves/repo/pull/1"
    assert waits == [5.0]


def test_gh_required_when_pull_requests_enabled(
    make_repo: Callable[..., Path],
    make_settings: Callable[..., Settings],
    fake_bin: Callable[[str, str], Path],
) -> None:
    fake_bin("claude", _WORKING_BACKEND)
    make_repo(tasks="- [ ] Add X\n")
    settings = make_settings({"backend": {"name": "claude"}, "publish": {"create_pr": True}})

    def which(name: str) -> str | None:
        return None if name == "gh" else f"/usr/bin/{name}"

    with pytest.raises(PrerequisiteError, match="gh"):
        Orchestrator(settings, which=which).run()


def test_dry_run_runs_backend_without_committing(
    make_repo: Callable[..., Path],
    make_settings: Callable[..., Settings],
    fake_bin: Callable[[str, str], Path],
    run_git: Callable[..., Any],
) -> None:
    fake_bin("claude", _WORKING_BACKEND)
    repo = make_repo(tasks="- [ ] Add X\n")
    settings = make_settings({"backend": {"name": "claude"}, "run": {"dry_run": True}})

    report = Orchestrator(settings).run()

    (group,) = report.groups
    assert report.dry_run
    assert group.state is GroupState.LOCAL_ONLY
    assert group.workspace_path is not None
    assert (group.workspace_path / "implemented.txt").is_file()
    assert group.branch_name is not None
    assert _commit_count(run_git, repo, group.branch_name) == 0


def test_repositories_without_tasks_or_git_are_skipped(
    make_repo: Callable[..., Path],
    make_settings: Callable[..., Settings],
    tmp_path: Path,
) -> None:
    make_repo("done", tasks="- [x] Finished\n")
    make_repo("untracked")
    plain = tmp_path / "root" / "plain"
    plain.mkdir(parents=True)
    (plain / "TASKS.md").write_text("- [ ] Add X\n", encoding="utf-8")
    settings = make_settings(
        {"backends": {"copilot": {"executable": "copilot-not-installed-anywhere"}}}
    )

    report = Orchestrator(settings).run()

    assert report.succeeded
    reasons = {repository.name: repository.skipped_reason for repository in report.repositories}
    assert reasons == {"done": "no pending tasks", "plain": "not a git repository"}
