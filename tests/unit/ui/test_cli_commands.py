"""
snowyowl — unit tests for CLI commands and exit-code routing

File: tests/unit/ui/test_cli_commands.py

Purpose
- Exercise ``config``, ``parse``, ``doctor``, ``gc`` and ``run`` in-process and
  check the exit-code contract of the console entrypoint.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from io import StringIO
from pathlib import Path
from typing import Any

import pytest
import structlog

from snowyowl.config.loader import ConfigLoadError
from snowyowl.errors import BackendUnavailableError, PrerequisiteError
from snowyowl.integration_plane.workspace_manager import WorkspaceManager
from snowyowl.main import ExitCode, _route_exception, cli_entrypoint
from snowyowl.ui.cli import build_parser, run_cli
from snowyowl.ui.render import CLIRenderer


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    yield
    structlog.reset_defaults()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "snowyowl.toml"
    path.write_text(
        "\n".join(
            [
                "[paths]",
                f'root = "{tmp_path / "root"}"',
                f'workspaces_dir = "{tmp_path / "worktrees"}"',
                f'log_dir = "{tmp_path / "logs"}"',
                "",
                "[language_model]",
                "enabled = false",
                "",
                "[observability]",
                "log_to_stdout = false",
                "",
            ]
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def git_only_path(
    fake_bin: Callable[[str, str], Path], tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Restrict ``PATH`` to a directory holding only a stand-in ``git``."""

    fake_bin("git", "exit 0")
    monkeypatch.setenv("PATH", str(tmp_path / "bin"))


def _stdout_json(capsys: pytest.CaptureFixture[str]) -> Any:
    return json.loads(capsys.readouterr().out)


def test_parser_maps_run_flags() -> None:
    args = build_parser().parse_args(
        [
            "run",
            "-B",
            "claude",
            "-m",
            "claude-opus-4",
            "-p",
            "-d",
            "-b",
            "develop",
            "--repo",
            "aves",
        ]
    )

    assert args.backend == "claude"
    assert args.model == "claude-opus-4"
    assert args.create_pr is True
    assert args.dry_run is True
    assert args.base_branch == "develop"
    assert args.repos == ["aves"]
    assert args.cleanup_worktrees is None


def test_config_command_prints_effective_json(
    config_file: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    root = tmp_path / "elsewhere"

    exit_code = run_cli(["config", "--config", str(config_file), "--root", str(root)])

    assert exit_code == 0
    payload = _stdout_json(capsys)
    assert payload["paths"]["root"] == str(root.resolve())
    assert payload["language_model"]["enabled"] is False
    assert payload["backend"]["name"] == "copilot"


def test_parse_command_emits_groups(
    config_file: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    repo = tmp_path / "root" / "aves"
    repo.mkdir(parents=True)
    (repo / "TASKS.md").write_text(
        "- [ ] Add OAuth [spec](./specs/oauth.md)\n  - [ ] Write tests\n- [ ] Fix cache\n",
        encoding="utf-8",
    )

    exit_code = run_cli(["parse", str(repo), "--config", str(config_file), "--json"])

    assert exit_code == 0
    payload = _stdout_json(capsys)
    assert [group["lead"] for group in payload["groups"]] == ["Add OAuth", "Fix cache"]
    first = payload["groups"][0]["tasks"]
    assert first[0]["specification"] == "./specs/oauth.md"
    assert first[1] == {"title": "Write tests", "depth": 1, "specification": None}


def test_parse_command_text_output(
    config_file: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    tasks = tmp_path / "TASKS.md"
    tasks.write_text("- [ ] Add X\n  - [ ] Write tests\n", encoding="utf-8")

    assert run_cli(["parse", str(tasks), "--config", str(config_file), "--no-color"]) == 0

    assert capsys.readouterr().out.splitlines() == ["1. Add X", "  - Write tests"]


def test_parse_missing_task_list_is_a_usage_error(
    config_file: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = run_cli(["parse", str(tmp_path / "nope.md"), "--config", str(config_file)])

    assert exit_code == 2
    assert "task list not found" in capsys.readouterr().out


@pytest.mark.usefixtures("git_only_path")
def test_doctor_passes_without_pull_requests(
    config_file: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = run_cli(["doctor", "--config", str(config_file), "--json"])

    payload = _stdout_json(capsys)
    assert exit_code == 0
    assert payload["ok"] is True
    statuses = {check["name"]: check["status"] for check in payload["checks"]}
    assert statuses["git"] == "ok"
    assert statuses["gh"] == "fail"


@pytest.mark.usefixtures("git_only_path")
def test_doctor_fails_when_pull_requests_need_gh(
    config_file: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = run_cli(["doctor", "--config", str(config_file), "--create-pr"])

    assert exit_code == 3
    assert "Some required checks failed." in capsys.readouterr().out


def test_gc_sweeps_leftover_worktrees(
    config_file: Path,
    make_repo: Callable[..., Path],
    capsys: pytest.CaptureFixture[str],
    tmp_path: Path,
) -> None:
    repo = make_repo(tasks="- [ ] Add X\n")
    WorkspaceManager(tmp_path / "worktrees").create(repo, "feat/add-x-1", "main")

    exit_code = run_cli(["gc", "--config", str(config_file)])

    assert exit_code == 0
    assert "Removed 1 worktree(s)." in capsys.readouterr().out
    assert not (tmp_path / "worktrees" / "repo-feat-add-x-1").exists()


@pytest.mark.usefixtures("git_only_path")
def test_run_with_missing_required_backend_exits_with_prerequisite_code(
    config_file: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (config_file.parent / "root").mkdir()

    exit_code = cli_entrypoint(["run", "--config", str(config_file), "--backend", "claude"])

    assert exit_code == ExitCode.PREREQUISITE_ERROR
    assert "claude backend executable not found" in capsys.readouterr().err


def test_invalid_config_file_exits_with_config_code(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    bad = tmp_path / "bad.toml"
    bad.write_text("[paths\nroot = ", encoding="utf-8")

    exit_code = cli_entrypoint(["config", "--config", str(bad)])

    assert exit_code == ExitCode.CONFIG_ERROR
    assert capsys.readouterr().err.startswith("snowyowl: ")


def test_unknown_command_exits_with_usage_code() -> None:
    assert cli_entrypoint(["frobnicate"]) == ExitCode.CONFIG_ERROR


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (ConfigLoadError("bad value"), ExitCode.CONFIG_ERROR),
        (PrerequisiteError("missing git"), ExitCode.PREREQUISITE_ERROR),
        (BackendUnavailableError("claude", "claude"), ExitCode.PREREQUISITE_ERROR),
        (RuntimeError("boom"), ExitCode.INTERNAL_ERROR),
    ],
)
def test_route_exception(exc: Exception, expected: ExitCode) -> None:
    assert _route_exception(exc) is expected


def test_route_exception_follows_cause_chain() -> None:
    try:
        try:
            raise ConfigLoadError("bad toml")
        except ConfigLoadError as inner:
            raise RuntimeError("wrapper") from inner
    except RuntimeError as outer:
        assert _route_exception(outer) is ExitCode.CONFIG_ERROR


def test_no_color_env_disables_color(monkeypatch: pytest.MonkeyPatch) -> None:
    class _Tty(StringIO):
        def isatty(self) -> bool:
            return True

    stream = _Tty()
    CLIRenderer(stream=stream).ok("git")
    monkeypatch.setenv("NO_COLOR", "1")
    plain = _Tty()
    CLIRenderer(stream=plain).ok("git")

    assert "\033[32m" in stream.getvalue()
    assert plain.getvalue() == "  OK  git\n"
