"""Natural-language helper calls with a deterministic fallback at every call site.

File: src/snowyowl/synthesis_plane/language_model.py

Purpose
- Wrap the ``llm`` CLI (``llm -m <model>``, prompt on stdin) used to rephrase task
  lists, propose branch slugs and write commit messages.
- Model every use as a two-step strategy: ``primary()`` may return ``None`` or
  fail, ``fallback()`` always produces text.

Security
- Prompts are passed on stdin; nothing is written to disk.
"""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from snowyowl.config.settings import LanguageModelSettings

_STDERR_EXCERPT_CHARS = 200


class TextCompleter(Protocol):
    """Anything that can answer a prompt with text, or ``None`` when it cannot."""

    def complete(self, prompt: str) -> str | None: ...


class TextStrategy(Protocol):
    """Primary/fallback pair resolved by :func:`resolve_text`."""

    name: str

    def primary(self) -> str | None: ...

    def fallback(self) -> str: ...


@dataclass(frozen=True, slots=True)
class FunctionStrategy:
    """``TextStrategy`` built from two callables."""

    name: str
    primary_fn: Callable[[], str | None]
    fallback_fn: Callable[[], str]

    def primary(self) -> str | None:
        return self.primary_fn()

    def fallback(self) -> str:
        return self.fallback_fn()


@dataclass(frozen=True, slots=True)
class ResolvedText:
    text: str
    used_fallback: bool


def resolve_text(strategy: TextStrategy, *, logger: Any | None = None) -> ResolvedText:
    """Return the primary answer when it is usable, otherwise the fallback.

    Exceptions raised by ``primary()`` are logged and treated as "no answer".
    """

    log = logger if logger is not None else structlog.get_logger(__name__)
    try:
        answer = strategy.primary()
    except Exception as exc:  # noqa: BLE001
        log.warning("language_model_primary_failed", strategy=strategy.name, error=str(exc))
        answer = None

    if answer is not None and answer.strip():
        return ResolvedText(text=answer, used_fallback=False)

    log.debug("language_model_fallback_used", strategy=strategy.name)
    return ResolvedText(text=strategy.fallback(), used_fallback=True)


class LanguageModelClient:
    """Blocking client for the ``llm`` command-line tool."""

    def __init__(
        self,
        settings: LanguageModelSettings,
        *,
        which: Callable[[str], str | None] = shutil.which,
        logger: Any | None = None,
    ) -> None:
        self._settings = settings
        self._which = which
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    def executable_path(self) -> str | None:
        if not self._settings.enabled:
            return None
        return self._which(self._settings.executable)

    def complete(self, prompt: str) -> str | None:
        """Send ``prompt`` and return stripped stdout, or ``None`` on any failure."""

        executable = self.executable_path()
        if executable is None:
            return None

        command = [executable, "-m", self._settings.model]
        try:
            completed = subprocess.run(
                command,
                input=prompt,
                capture_output=True,
                text=True,
                timeout=self._settings.timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired:
            self._logger.warning(
                "language_model_timeout",
                model=self._settings.model,
                timeout_seconds=self._settings.timeout_seconds,
            )
            return None
        except OSError as exc:
            self._logger.warning("language_model_unavailable", error=str(exc))
            return None

        if completed.returncode != 0:
            self._logger.warning(
                "language_model_failed",
                model=self._settings.model,
                returncode=completed.returncode,
                stderr=completed.stderr.strip()[:_STDERR_EXCERPT_CHARS],
            )
            return None

        text = completed.stdout.strip()
        return text or None


__all__ = [
    "FunctionStrategy",
    "LanguageModelClient",
    "ResolvedText",
    "TextCompleter",
    "TextStrategy",
    "resolve_text",
]
