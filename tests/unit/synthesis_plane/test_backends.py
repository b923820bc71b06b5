"""
snowyowl — unit tests for backend command construction

File: tests/unit/synthesis_plane/test_backends.py

Purpose
- Validate the argv each backend variant builds and the availability policy.
"""

from __future__ import annotations

import pytest

from snowyowl.config.settings import BackendToolSettings
from snowyowl.synthesis_plane.backends import (
    BACKENDS,
    PromptDelivery,
    get_backend,
    is_required,
)


def test_registry_holds_every_backend() -> None:
    assert set(BACKENDS) == {"copilot", "claude", "codex"}
    assert get_backend("claude").name == "claude"
    with pytest.raises(ValueError, match="unknown backend"):
        get_backend("cursor")


def test_copilot_prompt_on_stdin_with_allow_all_and_deny_list() -> None:
    tools = BackendToolSettings(
        executable="copilot", default_model="gpt-4o", denied_tools=("shell(rm)", "shell(git push)")
    )

    command = get_backend("copilot").build_command(
        "/usr/bin/copilot", "Implement X", model="gpt-4o", tools=tools
    )

    assert command.stdin == "Implement X"
    assert command.argv == (
        "/usr/bin/copilot",
        "--allow-all-tools",
        "--deny-tool",
        "shell(rm)",
        "--deny-tool",
        "shell(git push)",
        "--model",
        "gpt-4o",
    )
    assert get_backend("copilot").delivery is PromptDelivery.STDIN


def test_copilot_explicit_allow_list_replaces_allow_all() -> None:
    tools = BackendToolSettings(
        executable="copilot", default_model="", allowed_tools=("write", "shell(ls)")
    )

    command = get_backend("copilot").build_command("copilot", "p", model="", tools=tools)

    assert command.argv == ("copilot", "--allow-tool", "write", "--allow-tool", "shell(ls)")


def test_claude_prompt_as_argument_with_tool_flags() -> None:
    tools = BackendToolSettings(
        executable="claude",
        default_model="claude-sonnet-4-5",
        allowed_tools=("Read", "Edit"),
        denied_tools=("WebFetch",),
        permission_mode="acceptEdits",
    )

    command = get_backend("claude").build_command(
        "claude", "Implement X", model="claude-sonnet-4-5", tools=tools
    )

    assert command.stdin is None
    assert command.argv == (
        "claude",
        "-p",
        "Implement X",
        "--allowedTools",
        "Read,Edit",
        "--disallowedTools",
        "WebFetch",
        "--permission-mode",
        "acceptEdits",
        "--model",
        "claude-sonnet-4-5",
    )


def test_codex_exec_mode_puts_prompt_last() -> None:
    tools = BackendToolSettings(executable="codex", default_model="")

    without_model = get_backend("codex").build_command("codex", "Do it", model="", tools=tools)
    with_model = get_backend("codex").build_command("codex", "Do it", model="o4", tools=tools)

    assert without_model.argv == ("codex", "exec", "--full-auto", "Do it")
    assert with_model.argv == ("codex", "exec", "--full-auto", "--model", "o4", "Do it")


@pytest.mark.parametrize(
    ("name", "availability", "expected"),
    [
        ("copilot", "auto", False),
        ("claude", "auto", True),
        ("codex", "auto", True),
        ("copilot", "required", True),
        ("claude", "optional", False),
    ],
)
def test_availability_policy(name: str, availability: str, expected: bool) -> None:
    assert is_required(get_backend(name), availability) is expected
