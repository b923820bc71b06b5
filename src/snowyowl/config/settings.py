"""Typed, immutable view over a validated config mapping.

Components receive these dataclasses instead of the raw mapping; only the loader
reads the process environment.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from snowyowl.config.schema import assert_valid_config


@dataclass(frozen=True, slots=True)
class PathSettings:
    root: Path
    workspaces_dir: Path
    log_dir: Path
    tasks_file: str


@dataclass(frozen=True, slots=True)
class GitSettings:
    base_branch: str
    remote: str
    remote_host: str


@dataclass(frozen=True, slots=True)
class BackendToolSettings:
    executable: str
    default_model: str
    allowed_tools: tuple[str, ...] = ()
    denied_tools: tuple[str, ...] = ()
    permission_mode: str = ""


@dataclass(frozen=True, slots=True)
class BackendSettings:
    """Selected backend plus the per-backend tool settings."""

    name: str
    model: str
    availability: str
    tools: Mapping[str, BackendToolSettings] = field(default_factory=dict)

    @property
    def selected(self) -> BackendToolSettings:
        return self.tools[self.name]

    @property
    def effective_model(self) -> str:
        return self.model or self.selected.default_model


@dataclass(frozen=True, slots=True)
class LanguageModelSettings:
    enabled: bool
    executable: str
    model: str
    timeout_seconds: float


@dataclass(frozen=True, slots=True)
class PublishSettings:
    create_pr: bool
    settle_seconds: float
    cleanup_workspaces: bool


@dataclass(frozen=True, slots=True)
class RunSettings:
    dry_run: bool
    backend_timeout_seconds: float


@dataclass(frozen=True, slots=True)
class ObservabilitySettings:
    log_level: str
    log_format: str
    log_to_stdout: bool
    redact_secrets: bool


@dataclass(frozen=True, slots=True)
class Settings:
    paths: PathSettings
    git: GitSettings
    backend: BackendSettings
    language_model: LanguageModelSettings
    publish: PublishSettings
    run: RunSettings
    observability: ObservabilitySettings


def settings_from_config(config: Mapping[str, object]) -> Settings:
    """Validate ``config`` and build the frozen settings tree."""

    validated: dict[str, Any] = assert_valid_config(config)
    paths = validated["paths"]
    root = Path(paths["root"]).expanduser()
    workspaces_dir = (
        Path(paths["workspaces_dir"]).expanduser() if paths["workspaces_dir"] else root / "worktrees"
    )

    backend = validated["backend"]
    tools = {
        name: BackendToolSettings(
            executable=raw["executable"],
            default_model=raw["default_model"],
            allowed_tools=tuple(raw["allowed_tools"]),
            denied_tools=tuple(raw["denied_tools"]),
            permission_mode=raw["permission_mode"],
        )
        for name, raw in validated["backends"].items()
    }

    return Settings(
        paths=PathSettings(
            root=root,
            workspaces_dir=workspaces_dir,
            log_dir=Path(paths["log_dir"]).expanduser(),
            tasks_file=paths["tasks_file"],
        ),
        git=GitSettings(**validated["git"]),
        backend=BackendSettings(
            name=backend["name"],
            model=backend["model"],
            availability=backend["availability"],
            tools=tools,
        ),
        language_model=LanguageModelSettings(**validated["language_model"]),
        publish=PublishSettings(**validated["publish"]),
        run=RunSettings(**validated["run"]),
        observability=ObservabilitySettings(**validated["observability"]),
    )


__all__ = [
    "BackendSettings",
    "BackendToolSettings",
    "GitSettings",
    "LanguageModelSettings",
    "ObservabilitySettings",
    "PathSettings",
    "PublishSettings",
    "RunSettings",
    "Settings",
    "settings_from_config",
]
