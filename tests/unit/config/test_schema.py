"""
snowyowl — unit tests for config schema validation

File: tests/unit/config/test_schema.py

Purpose
- Validate strict config schema behavior, structured errors and redaction.

What this test file should cover
- Defaults validate and build a settings tree.
- Unknown keys, bad enums and bad types are reported with their dotted paths.
- Embedded secrets are rejected; redaction is recursive and non-destructive.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from snowyowl.config import (
    ConfigValidationError,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
    settings_from_config,
    validate_config,
)


def test_defaults_are_valid() -> None:
    result = validate_config(default_config())

    assert result.is_valid
    assert result.config is not None
    assert result.config["backend"]["name"] == "copilot"


def test_issue_paths_are_deterministic() -> None:
    config = merge_config(
        default_config(),
        {
            "backend": {"availability": "sometimes"},
            "publish": {"create_pr": "yes", "settle_seconds": -1},
            "paths": {"tasks_file": "docs/TASKS.md"},
            "extra": {},
        },
    )

    result = validate_config(config)

    assert not result.is_valid
    assert [issue.path for issue in result.issues] == [
        "extra",
        "paths.tasks_file",
        "backend.availability",
        "publish.create_pr",
        "publish.settle_seconds",
    ]


def test_unknown_backend_section_is_rejected() -> None:
    config = merge_config(default_config(), {"backends": {"cursor": {"executable": "cursor"}}})

    with pytest.raises(ConfigValidationError) as exc_info:
        assert_valid_config(config)

    assert any(issue.path == "backends.cursor" for issue in exc_info.value.issues)


def test_embedded_secret_keys_are_rejected() -> None:
    config = merge_config(default_config(), {"publish": {"github_token": "ghp_x"}})

    result = validate_config(config)

    messages = {issue.path: issue.message for issue in result.issues}
    assert "embedded secret" in messages["publish.github_token"]


def test_schema_version_mismatch_has_migration_guidance() -> None:
    config = merge_config(default_config(), {"meta": {"schema_version": 2}})

    result = validate_config(config)

    assert len(result.issues) == 1
    assert "newer than supported" in result.issues[0].message


def test_redaction_is_recursive_and_non_destructive() -> None:
    payload = {"outer": {"api_key": "abc", "inner": [{"password": "p"}, "keep"]}, "name": "x"}

    redacted = redact_config(payload)

    assert redacted == {
        "name": "x",
        "outer": {"api_key": "<redacted>", "inner": [{"password": "<redacted>"}, "keep"]},
    }
    assert payload["outer"]["api_key"] == "abc"


def test_settings_tree_defaults(tmp_path: Path) -> None:
    config = merge_config(default_config(), {"paths": {"root": str(tmp_path)}})

    settings = settings_from_config(config)

    assert settings.paths.root == tmp_path
    assert settings.paths.workspaces_dir == tmp_path / "worktrees"
    assert settings.paths.tasks_file == "TASKS.md"
    assert settings.backend.selected.executable == "copilot"
    assert settings.backend.effective_model == "gpt-4o"
    assert settings.backend.selected.denied_tools == ("shell(rm)",)
    assert settings.publish.create_pr is False
    assert settings.run.dry_run is False


def test_backend_model_override_wins_over_default_model() -> None:
    config = merge_config(
        default_config(), {"backend": {"name": "claude", "model": "claude-opus-4"}}
    )

    settings = settings_from_config(config)

    assert settings.backend.selected.permission_mode == "acceptEdits"
    assert settings.backend.effective_model == "claude-opus-4"
