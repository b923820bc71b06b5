"""
snowyowl — task list parser

File: src/snowyowl/planning/task_parser.py

Purpose
- Turn a ``TASKS.md`` checklist into ordered ``Task`` records with nesting depth
  and optional linked specification paths.

Functional requirements
- Primary strategy asks the language model to rephrase unchecked items as short
  imperatives, with two-space indentation for hierarchy and links kept verbatim.
- When that yields nothing, a deterministic scan of ``- [ ]`` lines is used with
  the line's own leading whitespace as the depth signal.
- Never raises; an empty list is logged, not fatal. Empty titles are dropped.
- Subtasks that appear before any top-level task are promoted to top level.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

import structlog

from snowyowl.planning.tasks import Task
from snowyowl.synthesis_plane.language_model import FunctionStrategy, resolve_text
from snowyowl.synthesis_plane.prompt_templates import TASK_PARSE, PromptTemplateEngine

if TYPE_CHECKING:
    from snowyowl.synthesis_plane.language_model import TextCompleter

TAB_WIDTH: Final[int] = 4

_UNCHECKED_ITEM_RE: Final[re.Pattern[str]] = re.compile(r"^(?P<indent>\s*)[-*]\s\[\s\](?P<text>.*)$")
_CHECKBOX_PREFIX_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?P<indent>\s*)(?:[-*]\s+\[[\sxX]\]\s*|[-*]\s+)"
)
_CODE_FENCE_RE: Final[re.Pattern[str]] = re.compile(r"^\s*(```|~~~)")
_SPEC_LINK_RE: Final[re.Pattern[str]] = re.compile(r"\[(?P<text>[^\]]*)\]\((?P<path>[^)\s]*\.md)\)")


@dataclass(frozen=True, slots=True)
class _RawLine:
    indent: int
    text: str


class TaskParser:
    """Parse checklist documents into ``Task`` sequences."""

    def __init__(
        self,
        *,
        language_model: TextCompleter | None = None,
        templates: PromptTemplateEngine | None = None,
        logger: Any | None = None,
    ) -> None:
        self._language_model = language_model
        self._templates = templates if templates is not None else PromptTemplateEngine()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def parse(self, document: str) -> tuple[Task, ...]:
        """Parse ``document``; returns an empty tuple rather than raising."""

        resolved = resolve_text(
            FunctionStrategy(
                name="task_parse",
                primary_fn=lambda: self._ask_language_model(document),
                fallback_fn=lambda: extract_unchecked_items(document),
            ),
            logger=self._logger,
        )
        if resolved.used_fallback and self._language_model is not None:
            self._logger.info("task_parse_degraded", reason="language model returned no tasks")

        tasks = tasks_from_lines(resolved.text, logger=self._logger)
        if not tasks:
            self._logger.warning("task_parse_empty")
        return tasks

    def _ask_language_model(self, document: str) -> str | None:
        if self._language_model is None:
            return None
        prompt = self._templates.render(TASK_PARSE, variables={"document": document}).prompt
        answer = self._language_model.complete(prompt)
        if answer is None:
            return None
        return clean_language_model_output(answer) or None


def extract_unchecked_items(document: str) -> str:
    """Deterministic fallback: keep ``- [ ]`` items as ``<indent><text>`` lines."""

    lines: list[str] = []
    for raw in document.splitlines():
        match = _UNCHECKED_ITEM_RE.match(raw.expandtabs(TAB_WIDTH))
        if match is None:
            continue
        text = match.group("text").strip()
        if text:
            lines.append(f"{match.group('indent')}{text}")
    return "\n".join(lines)


def clean_language_model_output(text: str) -> str:
    """Drop blank and code-fence lines and strip leftover bullet/checkbox prefixes."""

    cleaned: list[str] = []
    for raw in text.splitlines():
        line = raw.expandtabs(TAB_WIDTH).rstrip()
        if not line.strip() or _CODE_FENCE_RE.match(line):
            continue
        cleaned.append(_CHECKBOX_PREFIX_RE.sub(lambda match: match.group("indent"), line, count=1))
    return "\n".join(line for line in cleaned if line.strip())


def split_specification_link(line: str) -> tuple[str, str | None]:
    """Return ``(title, link)`` where the first ``[text](path.md)`` is replaced by its text."""

    match = _SPEC_LINK_RE.search(line)
    if match is None:
        return line.strip(), None
    title = (line[: match.start()] + match.group("text") + line[match.end() :]).strip()
    return title, match.group("path")


def tasks_from_lines(text: str, *, logger: Any | None = None) -> tuple[Task, ...]:
    """Convert indented task lines into ``Task`` records.

    Indentation widths are mapped to depth levels with a stack, so two- and
    four-space nesting both produce depth 1.
    """

    log = logger if logger is not None else structlog.get_logger(__name__)
    raw_lines = [
        _RawLine(indent=len(line) - len(line.lstrip(" ")), text=line.strip())
        for line in (item.expandtabs(TAB_WIDTH).rstrip() for item in text.splitlines())
        if line.strip()
    ]

    tasks: list[Task] = []
    stack: list[int] = [0]
    seen_top_level = False

    for raw in raw_lines:
        if raw.indent < stack[0]:
            stack = [raw.indent]
        while len(stack) > 1 and raw.indent < stack[-1]:
            stack.pop()
        if raw.indent > stack[-1]:
            stack.append(raw.indent)
        depth = len(stack) - 1

        title, link = split_specification_link(raw.text)
        if not title:
            log.debug("task_dropped_empty_title", line=raw.text)
            continue

        if depth > 0 and not seen_top_level:
            log.warning("task_orphan_promoted", task=title)
            depth = 0
            stack = [raw.indent]
        seen_top_level = seen_top_level or depth == 0

        tasks.append(
            Task(title=title, depth=depth, source_order=len(tasks), specification_link=link)
        )
    return tuple(tasks)


__all__ = [
    "TAB_WIDTH",
    "TaskParser",
    "clean_language_model_output",
    "extract_unchecked_items",
    "split_specification_link",
    "tasks_from_lines",
]
