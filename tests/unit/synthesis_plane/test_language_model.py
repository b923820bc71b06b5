"""
snowyowl — unit tests for the language-model helper

File: tests/unit/synthesis_plane/test_language_model.py

Purpose
- Validate primary/fallback resolution and the ``llm`` CLI client against a
  fake executable.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from structlog.testing import capture_logs

from snowyowl.config.settings import LanguageModelSettings
from snowyowl.synthesis_plane.language_model import (
    FunctionStrategy,
    LanguageModelClient,
    resolve_text,
)


def _settings(*, enabled: bool = True, timeout: float = 5.0) -> LanguageModelSettings:
    return LanguageModelSettings(
        enabled=enabled, executable="llm", model="test-model", timeout_seconds=timeout
    )


def test_primary_answer_wins() -> None:
    resolved = resolve_text(
        FunctionStrategy(name="t", primary_fn=lambda: "primary", fallback_fn=lambda: "fallback")
    )

    assert resolved.text == "primary"
    assert not resolved.used_fallback


def test_blank_or_missing_primary_uses_fallback() -> None:
    for answer in (None, "", "  \n"):
        resolved = resolve_text(
            FunctionStrategy(
                name="t", primary_fn=lambda answer=answer: answer, fallback_fn=lambda: "fallback"
            )
        )
        assert resolved.text == "fallback"
        assert resolved.used_fallback


def test_primary_exception_is_logged_not_raised() -> None:
    def explode() -> str | None:
        raise OSError("boom")

    with capture_logs() as logs:
        resolved = resolve_text(
            FunctionStrategy(name="slug", primary_fn=explode, fallback_fn=lambda: "fallback")
        )

    assert resolved.text == "fallback"
    failure = next(entry for entry in logs if entry["event"] == "language_model_primary_failed")
    assert failure["strategy"] == "slug"
    assert failure["error"] == "boom"


def test_client_sends_prompt_on_stdin(
    fake_bin: Callable[[str, str], Path], tmp_path: Path
) -> None:
    captured = tmp_path / "stdin.txt"
    fake_bin("llm", f'cat > "{captured}"\necho "model=$2"')

    answer = LanguageModelClient(_settings()).complete("Generate a slug")

    assert answer == "model=test-model"
    assert captured.read_text(encoding="utf-8") == "Generate a slug"


def test_client_returns_none_on_failure(fake_bin: Callable[[str, str], Path]) -> None:
    fake_bin("llm", 'echo "rate limited" >&2\nexit 3')

    with capture_logs() as logs:
        answer = LanguageModelClient(_settings()).complete("prompt")

    assert answer is None
    failure = next(entry for entry in logs if entry["event"] == "language_model_failed")
    assert failure["returncode"] == 3
    assert failure["stderr"] == "rate limited"


def test_client_times_out(fake_bin: Callable[[str, str], Path]) -> None:
    fake_bin("llm", "exec sleep 5")

    with capture_logs() as logs:
        answer = LanguageModelClient(_settings(timeout=0.2)).complete("prompt")

    assert answer is None
    assert any(entry["event"] == "language_model_timeout" for entry in logs)


def test_disabled_or_missing_client_answers_none() -> None:
    assert LanguageModelClient(_settings(enabled=False)).complete("prompt") is None
    assert LanguageModelClient(_settings(), which=lambda _name: None).complete("prompt") is None
