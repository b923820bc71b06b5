"""Code-generation backend variants and their command lines.

File: src/snowyowl/synthesis_plane/backends.py

Purpose
- Describe each supported CLI (copilot, claude, codex): how the prompt is
  delivered, which tool-permission flags it takes and its defaults.
- ``BACKENDS`` is the registry the dispatcher looks variants up in.

Security
- Prompts go on stdin or as a single argv element; never through a shell.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

from snowyowl.config.settings import BackendToolSettings


class PromptDelivery(enum.Enum):
    """How a backend receives the prompt text."""

    STDIN = "stdin"
    ARGUMENT = "argument"


@dataclass(frozen=True, slots=True)
class BackendCommand:
    """Fully built invocation: argv plus optional stdin payload."""

    argv: tuple[str, ...]
    stdin: str | None = None


@dataclass(frozen=True, slots=True)
class Backend:
    """Base backend variant; subclasses build their own command lines."""

    name: str
    executable: str
    default_model: str
    required_by_default: bool
    install_hint: str = ""
    delivery: PromptDelivery = PromptDelivery.ARGUMENT

    def build_command(
        self,
        executable_path: str,
        prompt: str,
        *,
        model: str,
        tools: BackendToolSettings,
    ) -> BackendCommand:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class CopilotBackend(Backend):
    """GitHub Copilot CLI: prompt on stdin, tool allow/deny flags."""

    delivery: PromptDelivery = PromptDelivery.STDIN

    def build_command(
        self,
        executable_path: str,
        prompt: str,
        *,
        model: str,
        tools: BackendToolSettings,
    ) -> BackendCommand:
        argv = [executable_path]
        if tools.allowed_tools:
            for tool in tools.allowed_tools:
                argv.extend(["--allow-tool", tool])
        else:
            argv.append("--allow-all-tools")
        for tool in tools.denied_tools:
            argv.extend(["--deny-tool", tool])
        if model:
            argv.extend(["--model", model])
        return BackendCommand(argv=tuple(argv), stdin=prompt)


@dataclass(frozen=True, slots=True)
class ClaudeBackend(Backend):
    """Claude Code CLI in print mode: prompt via ``-p``."""

    def build_command(
        self,
        executable_path: str,
        prompt: str,
        *,
        model: str,
        tools: BackendToolSettings,
    ) -> BackendCommand:
        argv = [executable_path, "-p", prompt]
        if tools.allowed_tools:
            argv.extend(["--allowedTools", ",".join(tools.allowed_tools)])
        if tools.denied_tools:
            argv.extend(["--disallowedTools", ",".join(tools.denied_tools)])
        if tools.permission_mode:
            argv.extend(["--permission-mode", tools.permission_mode])
        if model:
            argv.extend(["--model", model])
        return BackendCommand(argv=tuple(argv))


@dataclass(frozen=True, slots=True)
class CodexBackend(Backend):
    """Codex CLI non-interactive ``exec`` mode; no tool flags."""

    def build_command(
        self,
        executable_path: str,
        prompt: str,
        *,
        model: str,
        tools: BackendToolSettings,
    ) -> BackendCommand:
        argv = [executable_path, "exec", "--full-auto"]
        if model:
            argv.extend(["--model", model])
        argv.append(prompt)
        return BackendCommand(argv=tuple(argv))


BACKENDS: Final[Mapping[str, Backend]] = {
    "copilot": CopilotBackend(
        name="copilot",
        executable="copilot",
        default_model="gpt-4o",
        required_by_default=False,
        install_hint="npm install -g @github/copilot",
    ),
    "claude": ClaudeBackend(
        name="claude",
        executable="claude",
        default_model="claude-sonnet-4-5",
        required_by_default=True,
        install_hint="curl -fsSL https://claude.ai/install.sh | bash",
    ),
    "codex": CodexBackend(
        name="codex",
        executable="codex",
        default_model="",
        required_by_default=True,
        install_hint="npm install -g @openai/codex",
    ),
}


def get_backend(name: str) -> Backend:
    try:
        return BACKENDS[name]
    except KeyError:
        supported = ", ".join(sorted(BACKENDS))
        raise ValueError(f"unknown backend {name!r}; supported: {supported}") from None


def is_required(backend: Backend, availability: str) -> bool:
    """Resolve the ``auto|required|optional`` policy against the variant default."""

    if availability == "required":
        return True
    if availability == "optional":
        return False
    return backend.required_by_default


__all__ = [
    "BACKENDS",
    "Backend",
    "BackendCommand",
    "ClaudeBackend",
    "CodexBackend",
    "CopilotBackend",
    "PromptDelivery",
    "get_backend",
    "is_required",
]
