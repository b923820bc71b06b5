"""
snowyowl — unit tests for config loader

File: tests/unit/config/test_loader.py

Purpose
- Validate deterministic config loading from defaults, TOML, env overrides, and CLI overrides.

What this test file should cover
- Precedence: CLI > env > file > defaults.
- Env var path mapping, the legacy shell-tool names and type coercion.
- Path normalization relative to the config file.
- Redacted effective config dumping.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from snowyowl.config import ConfigValidationError
from snowyowl.config.loader import (
    ConfigLoadError,
    dump_effective_config,
    load_config,
)


def _write_config(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_loader_precedence_default_file_env_cli(tmp_path: Path) -> None:
    config_path = tmp_path / "snowyowl.toml"
    default_path = tmp_path / "default.toml"
    _write_config(default_path, "")
    _write_config(
        config_path,
        """
[publish]
settle_seconds = 5
""".strip(),
    )

    default_loaded = load_config(default_path, environ={})
    file_loaded = load_config(config_path, environ={})
    env_loaded = load_config(config_path, environ={"SNOWYOWL_PUBLISH_SETTLE_SECONDS": "7"})
    cli_loaded = load_config(
        config_path,
        environ={"SNOWYOWL_PUBLISH_SETTLE_SECONDS": "7"},
        cli_overrides={"publish.settle_seconds": 9.0},
    )

    assert default_loaded["publish"]["settle_seconds"] == 30.0
    assert file_loaded["publish"]["settle_seconds"] == 5.0
    assert env_loaded["publish"]["settle_seconds"] == 7.0
    assert cli_loaded["publish"]["settle_seconds"] == 9.0


def test_env_mapping_coerces_booleans_and_lists(tmp_path: Path) -> None:
    config_path = tmp_path / "snowyowl.toml"
    _write_config(config_path, "")

    loaded = load_config(
        config_path,
        environ={
            "SNOWYOWL_PUBLISH_CREATE_PR": "yes",
            "SNOWYOWL_RUN_DRY_RUN": "off",
            "SNOWYOWL_BACKENDS_CLAUDE_ALLOWED_TOOLS": "Read, Edit ,,Bash",
        },
    )

    assert loaded["publish"]["create_pr"] is True
    assert loaded["run"]["dry_run"] is False
    assert loaded["backends"]["claude"]["allowed_tools"] == ["Read", "Edit", "Bash"]


def test_legacy_env_names_apply_and_canonical_names_win(tmp_path: Path) -> None:
    config_path = tmp_path / "snowyowl.toml"
    _write_config(config_path, "")

    legacy = load_config(
        config_path,
        environ={
            "SNOWYOWL_BACKEND": "claude",
            "SNOWYOWL_MODEL": "claude-opus",
            "SNOWYOWL_CREATE_PR": "true",
            "SNOWYOWL_CLEANUP_WORKTREES": "1",
            "COPILOT_DENY_TOOLS": "shell(rm),shell(git push)",
        },
    )
    assert legacy["backend"]["name"] == "claude"
    assert legacy["backend"]["model"] == "claude-opus"
    assert legacy["publish"]["create_pr"] is True
    assert legacy["publish"]["cleanup_workspaces"] is True
    assert legacy["backends"]["copilot"]["denied_tools"] == ["shell(rm)", "shell(git push)"]

    both = load_config(
        config_path,
        environ={"SNOWYOWL_BACKEND": "claude", "SNOWYOWL_BACKEND_NAME": "codex"},
    )
    assert both["backend"]["name"] == "codex"


def test_invalid_env_values_raise_load_error(tmp_path: Path) -> None:
    config_path = tmp_path / "snowyowl.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigLoadError, match="SNOWYOWL_PUBLISH_CREATE_PR"):
        load_config(config_path, environ={"SNOWYOWL_PUBLISH_CREATE_PR": "maybe"})
    with pytest.raises(ConfigLoadError, match="must be a number"):
        load_config(config_path, environ={"SNOWYOWL_RUN_BACKEND_TIMEOUT_SECONDS": "soon"})


def test_unknown_backend_from_cli_fails_validation(tmp_path: Path) -> None:
    config_path = tmp_path / "snowyowl.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigValidationError) as exc_info:
        load_config(config_path, environ={}, cli_overrides={"backend.name": "cursor"})

    assert [issue.path for issue in exc_info.value.issues] == ["backend.name"]


def test_explicit_missing_file_and_bad_toml_raise(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="not found"):
        load_config(tmp_path / "missing.toml", environ={})

    broken = tmp_path / "broken.toml"
    _write_config(broken, "[publish\ncreate_pr = true")
    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(broken, environ={})


def test_config_path_from_environment(tmp_path: Path) -> None:
    config_path = tmp_path / "elsewhere" / "custom.toml"
    _write_config(config_path, '[git]\nbase_branch = "develop"\n')

    loaded = load_config(environ={"SNOWYOWL_CONFIG": str(config_path)})

    assert loaded["git"]["base_branch"] == "develop"


def test_relative_paths_resolve_against_config_file(tmp_path: Path) -> None:
    config_path = tmp_path / "conf" / "snowyowl.toml"
    _write_config(
        config_path,
        """
[paths]
root = "../repos"
workspaces_dir = "wt"
log_dir = "/var/tmp/snowyowl-logs"
""".strip(),
    )

    loaded = load_config(config_path, environ={})

    assert loaded["paths"]["root"] == (tmp_path.resolve() / "repos").as_posix()
    assert loaded["paths"]["workspaces_dir"] == (tmp_path.resolve() / "conf" / "wt").as_posix()
    assert loaded["paths"]["log_dir"] == "/var/tmp/snowyowl-logs"


def test_dump_effective_config_is_deterministic_json(tmp_path: Path) -> None:
    config_path = tmp_path / "snowyowl.toml"
    _write_config(config_path, "")

    first = dump_effective_config(load_config(config_path, environ={}))
    second = dump_effective_config(load_config(config_path, environ={}))

    assert first == second
    parsed = json.loads(first)
    assert parsed["backend"]["name"] == "copilot"
    assert parsed["meta"]["schema_version"] == 1
