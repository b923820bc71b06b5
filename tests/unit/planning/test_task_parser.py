"""
snowyowl — unit tests for the task list parser

File: tests/unit/planning/test_task_parser.py

Purpose
- Validate checklist parsing through both the language-model path and the
  deterministic scan, including nesting, links and degraded behavior.
"""

from __future__ import annotations

import string

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from structlog.testing import capture_logs

from snowyowl.planning import (
    TaskParser,
    clean_language_model_output,
    extract_unchecked_items,
    group_tasks,
    split_specification_link,
    tasks_from_lines,
)


class _StaticCompleter:
    def __init__(self, answer: str | None) -> None:
        self.answer = answer
        self.prompts: list[str] = []

    def complete(self, prompt: str) -> str | None:
        self.prompts.append(prompt)
        return self.answer


class _ExplodingCompleter:
    def complete(self, prompt: str) -> str | None:
        raise RuntimeError("service down")


def test_checklist_with_nesting_and_checked_items() -> None:
    document = "- [ ] Add X\n  - [ ] sub\n- [x] done\n- [ ] Add Y"

    tasks = TaskParser().parse(document)

    assert [(task.title, task.depth) for task in tasks] == [
        ("Add X", 0),
        ("sub", 1),
        ("Add Y", 0),
    ]
    groups = group_tasks(tasks)
    assert [(group.lead_task.title, [t.title for t in group.member_tasks]) for group in groups] == [
        ("Add X", ["sub"]),
        ("Add Y", []),
    ]


def test_four_space_and_tab_indentation_map_to_depth_one() -> None:
    document = "- [ ] Lead\n    - [ ] four spaces\n\t- [ ] tabbed\n        - [ ] deeper"

    tasks = TaskParser().parse(document)

    assert [(task.title, task.depth) for task in tasks] == [
        ("Lead", 0),
        ("four spaces", 1),
        ("tabbed", 1),
        ("deeper", 2),
    ]


def test_specification_link_is_extracted_and_title_keeps_link_text() -> None:
    document = "- [ ] Implement auth per [the auth spec](./specs/auth.md) today"

    (task,) = TaskParser().parse(document)

    assert task.title == "Implement auth per the auth spec today"
    assert task.specification_link == "./specs/auth.md"


def test_non_markdown_links_are_left_in_title() -> None:
    title, link = split_specification_link("See [docs](https://example.com/page)")

    assert link is None
    assert title == "See [docs](https://example.com/page)"


def test_orphan_subtask_is_promoted_with_warning() -> None:
    with capture_logs() as logs:
        tasks = tasks_from_lines("  orphan\n    child\nTop")

    assert [(task.title, task.depth) for task in tasks] == [
        ("orphan", 0),
        ("child", 1),
        ("Top", 0),
    ]
    assert any(entry["event"] == "task_orphan_promoted" for entry in logs)


def test_language_model_answer_is_used_when_present() -> None:
    completer = _StaticCompleter("```\n- [ ] Add login page\n  - [ ] Add form validation\n```")

    tasks = TaskParser(language_model=completer).parse("- [ ] login stuff")

    assert [(task.title, task.depth) for task in tasks] == [
        ("Add login page", 0),
        ("Add form validation", 1),
    ]
    assert "login stuff" in completer.prompts[0]


def test_empty_language_model_answer_degrades_to_scan() -> None:
    completer = _StaticCompleter("   ")

    with capture_logs() as logs:
        tasks = TaskParser(language_model=completer).parse("- [ ] Keep going")

    assert [task.title for task in tasks] == ["Keep going"]
    assert any(entry["event"] == "task_parse_degraded" for entry in logs)


def test_failing_language_model_never_raises() -> None:
    with capture_logs() as logs:
        tasks = TaskParser(language_model=_ExplodingCompleter()).parse("- [ ] Still parsed")

    assert [task.title for task in tasks] == ["Still parsed"]
    assert any(entry["event"] == "language_model_primary_failed" for entry in logs)


def test_document_without_tasks_logs_empty() -> None:
    with capture_logs() as logs:
        tasks = TaskParser().parse("# Notes\n\n- [x] all done\n")

    assert tasks == ()
    assert any(entry["event"] == "task_parse_empty" for entry in logs)


def test_blank_checkbox_lines_are_dropped() -> None:
    assert extract_unchecked_items("- [ ] \n- [ ]   \n- [ ] real") == "real"


def test_clean_language_model_output_strips_prefixes() -> None:
    cleaned = clean_language_model_output("* Do a\n\n  - [x] Do b\n~~~\n- Do c")

    assert cleaned == "Do a\n  Do b\nDo c"


_WORD = st.text(alphabet=string.ascii_letters + string.digits, min_size=1, max_size=12)
_ITEM = st.tuples(
    st.booleans(),
    st.integers(min_value=0, max_value=3),
    st.lists(_WORD, min_size=1, max_size=4).map(" ".join),
)


@settings(
    max_examples=75,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)
@given(items=st.lists(_ITEM, max_size=15))
def test_task_count_matches_unchecked_lines(items: list[tuple[bool, int, str]]) -> None:
    lines = [
        f"{'  ' * indent}- [{'x' if checked else ' '}] {text}" for checked, indent, text in items
    ]
    document = "\n".join(lines)

    tasks = TaskParser().parse(document)

    unchecked = [text for checked, _indent, text in items if not checked]
    assert len(tasks) == len(unchecked)
    assert [task.title for task in tasks] == unchecked
    assert all(task.depth >= 0 for task in tasks)
