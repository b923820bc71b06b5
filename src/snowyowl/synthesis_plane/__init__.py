"""
snowyowl — synthesis plane

File: src/snowyowl/synthesis_plane/__init__.py

Purpose
- Prompt construction, the natural-language helper with deterministic
  fallbacks, and dispatch to external code-generation CLIs.

Functional requirements
- Backends are opaque: a prompt goes in, an exit code and log output come out.
"""

from snowyowl.synthesis_plane.backends import (
    BACKENDS,
    Backend,
    BackendCommand,
    ClaudeBackend,
    CodexBackend,
    CopilotBackend,
    PromptDelivery,
    get_backend,
    is_required,
)
from snowyowl.synthesis_plane.dispatch import BackendDispatcher, BackendResult, DispatchMode
from snowyowl.synthesis_plane.language_model import (
    FunctionStrategy,
    LanguageModelClient,
    ResolvedText,
    TextCompleter,
    TextStrategy,
    resolve_text,
)
from snowyowl.synthesis_plane.markers import marker_path, marker_slug, write_marker
from snowyowl.synthesis_plane.prompt_templates import (
    PromptTemplateEngine,
    PromptTemplateError,
    RenderedPrompt,
    render_prompt_template,
)

__all__ = [
    "BACKENDS",
    "Backend",
    "BackendCommand",
    "BackendDispatcher",
    "BackendResult",
    "ClaudeBackend",
    "CodexBackend",
    "CopilotBackend",
    "DispatchMode",
    "FunctionStrategy",
    "LanguageModelClient",
    "PromptDelivery",
    "PromptTemplateEngine",
    "PromptTemplateError",
    "RenderedPrompt",
    "ResolvedText",
    "TextCompleter",
    "TextStrategy",
    "get_backend",
    "is_required",
    "marker_path",
    "marker_slug",
    "render_prompt_template",
    "resolve_text",
    "write_marker",
]
