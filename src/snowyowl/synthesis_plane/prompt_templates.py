"""
snowyowl — prompt templates

File: src/snowyowl/synthesis_plane/prompt_templates.py

Purpose
- Loads and renders the packaged ``templates/*.md.j2`` prompts with strict placeholders.

What should be included in this file
- Template rendering rules and allowed variables.
- Prompt hashing so log lines can reference the exact prompt sent to a backend.

Functional requirements
- Must render prompts deterministically for same inputs.
- Untrusted inputs (task titles, specification text) are substituted verbatim and
  never evaluated as template source.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Final

from jinja2 import Environment, StrictUndefined, meta

if TYPE_CHECKING:
    from collections.abc import Collection, Mapping

_TEMPLATE_NAME_RE = re.compile(r"^[a-z0-9_]+$")

TASK_PARSE: Final[str] = "task_parse"
BRANCH_SLUG: Final[str] = "branch_slug"
COMMIT_MESSAGE: Final[str] = "commit_message"
IMPLEMENT_WITH_SPEC: Final[str] = "implement_with_spec"
IMPLEMENT_WITHOUT_SPEC: Final[str] = "implement_without_spec"
PULL_REQUEST_BODY: Final[str] = "pull_request_body"

# Variables each packaged template may reference.
TEMPLATE_VARIABLES: Final[Mapping[str, frozenset[str]]] = {
    TASK_PARSE: frozenset({"document"}),
    BRANCH_SLUG: frozenset({"task_title"}),
    COMMIT_MESSAGE: frozenset({"task_title"}),
    IMPLEMENT_WITH_SPEC: frozenset(
        {
            "repository_name",
            "branch_name",
            "workspace_path",
            "task_title",
            "member_of",
            "specification",
        }
    ),
    IMPLEMENT_WITHOUT_SPEC: frozenset(
        {"repository_name", "branch_name", "workspace_path", "task_title", "member_of"}
    ),
    PULL_REQUEST_BODY: frozenset({"task_titles"}),
}


class PromptTemplateError(RuntimeError):
    """Base error for prompt template loading and rendering."""


class PromptTemplateNotFoundError(PromptTemplateError, FileNotFoundError):
    """Raised when a template file does not exist."""


class PromptTemplateVariableError(PromptTemplateError, ValueError):
    """Raised for missing/extra variables or whitelist violations."""


@dataclass(frozen=True, slots=True)
class RenderedPrompt:
    """Rendered prompt and its hash for log correlation."""

    prompt: str
    prompt_hash: str
    template_name: str


class PromptTemplateEngine:
    """Deterministic template loader + renderer."""

    def __init__(self, *, template_root: Path | str | None = None) -> None:
        root = Path(template_root) if template_root is not None else _default_template_root()
        resolved_root = root.resolve()
        if not resolved_root.is_dir():
            raise PromptTemplateNotFoundError(f"template root does not exist: {resolved_root}")

        self._template_root = resolved_root
        self._environment = Environment(
            undefined=StrictUndefined,
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            newline_sequence="\n",
            keep_trailing_newline=True,
        )

    @property
    def template_root(self) -> Path:
        return self._template_root

    def render(
        self,
        name: str,
        *,
        variables: Mapping[str, object],
        allowed_variables: Collection[str] | None = None,
    ) -> RenderedPrompt:
        """Render one template with strict variable/whitelist checks."""

        template_path = self._resolve_template_path(name)
        template_source = _normalize_newlines(template_path.read_text(encoding="utf-8"))

        declared = set(meta.find_undeclared_variables(self._environment.parse(template_source)))
        allowed = set(
            allowed_variables
            if allowed_variables is not None
            else TEMPLATE_VARIABLES.get(name, declared)
        )

        unexpected_in_template = sorted(declared - allowed)
        if unexpected_in_template:
            raise PromptTemplateVariableError(
                "template uses variables not allowed by whitelist: "
                + ", ".join(unexpected_in_template)
            )
        unexpected_inputs = sorted(set(variables) - allowed)
        if unexpected_inputs:
            raise PromptTemplateVariableError(
                "unexpected variables were provided: " + ", ".join(unexpected_inputs)
            )
        missing_required = sorted(declared - set(variables))
        if missing_required:
            raise PromptTemplateVariableError(
                "missing required template variables: " + ", ".join(missing_required)
            )

        template = self._environment.from_string(template_source)
        rendered = _normalize_newlines(template.render(**variables))
        return RenderedPrompt(
            prompt=rendered,
            prompt_hash=hashlib.sha256(rendered.encode("utf-8")).hexdigest(),
            template_name=name,
        )

    def _resolve_template_path(self, name: str) -> Path:
        if not _TEMPLATE_NAME_RE.fullmatch(name):
            raise ValueError(f"invalid template name: {name!r}")
        candidate = self._template_root / f"{name}.md.j2"
        if not candidate.is_file():
            raise PromptTemplateNotFoundError(
                f"template not found: {name!r} under {self._template_root}"
            )
        return candidate


def render_prompt_template(
    name: str,
    *,
    variables: Mapping[str, object],
    template_root: Path | str | None = None,
) -> RenderedPrompt:
    """Convenience one-shot renderer."""

    return PromptTemplateEngine(template_root=template_root).render(name, variables=variables)


def _default_template_root() -> Path:
    return Path(__file__).resolve().parent / "templates"


def _normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


__all__ = [
    "BRANCH_SLUG",
    "COMMIT_MESSAGE",
    "IMPLEMENT_WITHOUT_SPEC",
    "IMPLEMENT_WITH_SPEC",
    "PULL_REQUEST_BODY",
    "PromptTemplateEngine",
    "PromptTemplateError",
    "PromptTemplateNotFoundError",
    "PromptTemplateVariableError",
    "RenderedPrompt",
    "TASK_PARSE",
    "TEMPLATE_VARIABLES",
    "render_prompt_template",
]
