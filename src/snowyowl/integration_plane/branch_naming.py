"""Branch names for task groups: ``<type>/<words>-<epoch>[-<n>]``."""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Final

import structlog

from snowyowl.constants import DEFAULT_BRANCH_TYPE
from snowyowl.synthesis_plane.language_model import FunctionStrategy, resolve_text
from snowyowl.synthesis_plane.prompt_templates import BRANCH_SLUG, PromptTemplateEngine

if TYPE_CHECKING:
    from snowyowl.synthesis_plane.language_model import TextCompleter

SLUG_MAX_CHARS: Final[int] = 30
FALLBACK_SLUG_WORDS: Final[str] = "task"

_SLUG_RE: Final[re.Pattern[str]] = re.compile(r"^[a-z]+/[a-z-]+$")
_NON_ALNUM_RE: Final[re.Pattern[str]] = re.compile(r"[^a-z0-9]")
_DASH_RUN_RE: Final[re.Pattern[str]] = re.compile(r"-{2,}")


def sanitize_title(title: str, *, max_chars: int = SLUG_MAX_CHARS) -> str:
    """Lowercase ``title``, map non-alphanumerics to ``-`` and cut to ``max_chars``."""

    text = _NON_ALNUM_RE.sub("-", title.lower())[:max_chars]
    return _DASH_RUN_RE.sub("-", text).strip("-")


def fallback_slug(title: str) -> str:
    return f"{DEFAULT_BRANCH_TYPE}/{sanitize_title(title) or FALLBACK_SLUG_WORDS}"


def clean_slug(answer: str) -> str | None:
    """Return the answer with whitespace removed when it is a valid ``type/words`` slug."""

    slug = "".join(answer.split()).strip("`'\"")
    return slug if _SLUG_RE.fullmatch(slug) else None


class BranchNamer:
    """Issue unique branch names within one run."""

    def __init__(
        self,
        *,
        language_model: TextCompleter | None = None,
        templates: PromptTemplateEngine | None = None,
        clock: Callable[[], float] = time.time,
        logger: Any | None = None,
    ) -> None:
        self._language_model = language_model
        self._templates = templates if templates is not None else PromptTemplateEngine()
        self._clock = clock
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._issued: set[str] = set()

    def slug_for(self, title: str) -> str:
        resolved = resolve_text(
            FunctionStrategy(
                name="branch_slug",
                primary_fn=lambda: self._ask_language_model(title),
                fallback_fn=lambda: fallback_slug(title),
            ),
            logger=self._logger,
        )
        return resolved.text

    def name_for(self, title: str) -> str:
        """Slug plus an epoch-seconds token, with ``-<n>`` when already issued this run."""

        base = f"{self.slug_for(title)}-{int(self._clock())}"
        candidate = base
        counter = 2
        while candidate in self._issued:
            candidate = f"{base}-{counter}"
            counter += 1
        self._issued.add(candidate)
        self._logger.debug("branch_name_issued", branch=candidate, task=title)
        return candidate

    def _ask_language_model(self, title: str) -> str | None:
        if self._language_model is None:
            return None
        prompt = self._templates.render(BRANCH_SLUG, variables={"task_title": title}).prompt
        answer = self._language_model.complete(prompt)
        return clean_slug(answer) if answer else None


__all__ = [
    "BranchNamer",
    "FALLBACK_SLUG_WORDS",
    "SLUG_MAX_CHARS",
    "clean_slug",
    "fallback_slug",
    "sanitize_title",
]
