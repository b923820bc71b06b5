"""Stable constants shared across snowyowl planes."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Git defaults.
DEFAULT_BASE_BRANCH: Final[str] = "main"
DEFAULT_REMOTE: Final[str] = "origin"
DEFAULT_REMOTE_HOST: Final[str] = "github.com"
FALLBACK_BASE_BRANCHES: Final[tuple[str, ...]] = ("main", "master")
DEFAULT_BRANCH_TYPE: Final[str] = "feat"

# Code-generation backends, in registry order.
BACKEND_NAMES: Final[tuple[str, ...]] = ("copilot", "claude", "codex")

# Schema version for the persisted TOML config.
CONFIG_SCHEMA_VERSION: Final[int] = 1

# Task inputs.
TASKS_FILENAME: Final[str] = "TASKS.md"
SPECIFICATION_MAX_BYTES: Final[int] = 100 * 1024

# Workspace artifacts.
PENDING_TASKS_DIR: Final[PurePosixPath] = PurePosixPath(".pending_tasks")

# Publishing.
DEFAULT_SETTLE_SECONDS: Final[float] = 30.0

# Exit code reported for backend runs killed on timeout (matches coreutils ``timeout``).
TIMEOUT_EXIT_CODE: Final[int] = 124

__all__ = [
    "BACKEND_NAMES",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_BASE_BRANCH",
    "DEFAULT_BRANCH_TYPE",
    "DEFAULT_REMOTE",
    "DEFAULT_REMOTE_HOST",
    "DEFAULT_SETTLE_SECONDS",
    "FALLBACK_BASE_BRANCHES",
    "PENDING_TASKS_DIR",
    "SPECIFICATION_MAX_BYTES",
    "TASKS_FILENAME",
    "TIMEOUT_EXIT_CODE",
]
