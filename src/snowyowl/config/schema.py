"""
snowyowl — configuration schema and validation.

File: src/snowyowl/config/schema.py

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Schema versioning and migration guidance.
- Validation rules for required fields, types, enums, and numeric constraints.
- Deterministic deep-merge helpers.
- Redaction rules for sensitive fields.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Per-backend sections are only accepted for registered backend names.

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from snowyowl.constants import (
    BACKEND_NAMES,
    CONFIG_SCHEMA_VERSION,
    DEFAULT_BASE_BRANCH,
    DEFAULT_REMOTE,
    DEFAULT_REMOTE_HOST,
    DEFAULT_SETTLE_SECONDS,
    TASKS_FILENAME,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION

AVAILABILITY_POLICIES: Final[tuple[str, ...]] = ("auto", "required", "optional")
LOG_FORMATS: Final[tuple[str, ...]] = ("json", "text")
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_CAMEL_CASE_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

_SENSITIVE_KEY_TOKENS: Final[frozenset[str]] = frozenset(
    {"secret", "token", "password", "passwd", "apikey", "credential", "credentials"}
)

# Config paths that should be normalized relative to config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("paths", "root"),
    ("paths", "workspaces_dir"),
    ("paths", "log_dir"),
)


class MetaConfig(TypedDict):
    schema_version: int


class PathsConfig(TypedDict):
    root: str
    workspaces_dir: str
    log_dir: str
    tasks_file: str


class GitConfig(TypedDict):
    base_branch: str
    remote: str
    remote_host: str


class BackendSelection(TypedDict):
    name: str
    model: str
    availability: Literal["auto", "required", "optional"]


class BackendToolConfig(TypedDict):
    executable: str
    default_model: str
    allowed_tools: list[str]
    denied_tools: list[str]
    permission_mode: str


class LanguageModelConfig(TypedDict):
    enabled: bool
    executable: str
    model: str
    timeout_seconds: float


class PublishConfig(TypedDict):
    create_pr: bool
    settle_seconds: float
    cleanup_workspaces: bool


class RunConfig(TypedDict):
    dry_run: bool
    backend_timeout_seconds: float


class ObservabilityConfig(TypedDict):
    log_level: str
    log_format: Literal["json", "text"]
    log_to_stdout: bool
    redact_secrets: bool


class SnowyOwlConfig(TypedDict):
    meta: MetaConfig
    paths: PathsConfig
    git: GitConfig
    backend: BackendSelection
    backends: dict[str, BackendToolConfig]
    language_model: LanguageModelConfig
    publish: PublishConfig
    run: RunConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[SnowyOwlConfig] = {
    "meta": {"schema_version": ConfigSchemaVersion},
    "paths": {
        "root": "~/aves",
        # Empty means "<root>/worktrees".
        "workspaces_dir": "",
        "log_dir": "~/aves/snowyowl/logs",
        "tasks_file": TASKS_FILENAME,
    },
    "git": {
        "base_branch": DEFAULT_BASE_BRANCH,
        "remote": DEFAULT_REMOTE,
        "remote_host": DEFAULT_REMOTE_HOST,
    },
    "backend": {"name": "copilot", "model": "", "availability": "auto"},
    "backends": {
        "copilot": {
            "executable": "copilot",
            "default_model": "gpt-4o",
            "allowed_tools": [],
            "denied_tools": ["shell(rm)"],
            "permission_mode": "",
        },
        "claude": {
            "executable": "claude",
            "default_model": "claude-sonnet-4-5",
            "allowed_tools": ["Read", "Write", "Edit", "Bash", "Grep", "Glob"],
            "denied_tools": [],
            "permission_mode": "acceptEdits",
        },
        "codex": {
            "executable": "codex",
            "default_model": "",
            "allowed_tools": [],
            "denied_tools": [],
            "permission_mode": "",
        },
    },
    "language_model": {
        "enabled": True,
        "executable": "llm",
        "model": "gpt-4o-mini",
        "timeout_seconds": 120.0,
    },
    "publish": {
        "create_pr": False,
        "settle_seconds": DEFAULT_SETTLE_SECONDS,
        "cleanup_workspaces": False,
    },
    "run": {"dry_run": False, "backend_timeout_seconds": 3600.0},
    "observability": {
        "log_level": "INFO",
        "log_format": "text",
        "log_to_stdout": True,
        "redact_secrets": True,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> SnowyOwlConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    """Return deterministic migration guidance for schema version mismatch."""

    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade snowyowl.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the snowyowl runtime"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, "", issues)
    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return deterministic redacted representation for logs and ``snowyowl config``."""

    if not isinstance(config, Mapping):
        return {}
    redacted = _redact_value(config)
    if isinstance(redacted, dict):
        return redacted
    return {}


def _validate_root(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
) -> dict[str, Any]:
    validators: dict[str, Callable[[dict[str, object], str, _IssueCollector], dict[str, Any]]] = {
        "meta": _validate_meta,
        "paths": _validate_paths,
        "git": _validate_git,
        "backend": _validate_backend,
        "backends": _validate_backends,
        "language_model": _validate_language_model,
        "publish": _validate_publish,
        "run": _validate_run,
        "observability": _validate_observability,
    }
    _reject_unknown_keys(payload, set(validators), path, issues)
    _require_keys(payload, set(validators), path, issues)

    out: dict[str, Any] = {}
    for key, validator in validators.items():
        raw = payload.get(key)
        if raw is None:
            continue
        section_path = _join(path, key)
        section = _as_object(raw, section_path, issues)
        if section is None:
            continue
        out[key] = validator(section, section_path, issues)
    return out


def _validate_meta(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    _require_keys(payload, {"schema_version"}, path, issues)

    out: dict[str, Any] = {}
    if "schema_version" in payload:
        parsed = _as_int(
            payload["schema_version"], _join(path, "schema_version"), issues, minimum=1
        )
        if parsed is not None:
            out["schema_version"] = parsed
            if parsed != ConfigSchemaVersion:
                issues.add(_join(path, "schema_version"), migration_guidance(parsed))
    return out


def _validate_paths(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"root", "workspaces_dir", "log_dir", "tasks_file"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in ("root", "log_dir", "tasks_file"):
        if key in payload:
            parsed = _as_path_text(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    if "workspaces_dir" in payload:
        parsed_workspaces = _as_path_text(
            payload["workspaces_dir"], _join(path, "workspaces_dir"), issues, allow_empty=True
        )
        if parsed_workspaces is not None:
            out["workspaces_dir"] = parsed_workspaces

    tasks_file = out.get("tasks_file")
    if isinstance(tasks_file, str) and ("/" in tasks_file or "\\" in tasks_file):
        issues.add(_join(path, "tasks_file"), "must be a file name, not a path")
    return out


def _validate_git(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"base_branch", "remote", "remote_host"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in ("base_branch", "remote"):
        if key in payload:
            parsed = _as_str(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    if "remote_host" in payload:
        parsed_host = _as_str(
            payload["remote_host"], _join(path, "remote_host"), issues, allow_empty=True
        )
        if parsed_host is not None:
            out["remote_host"] = parsed_host
    return out


def _validate_backend(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"name", "model", "availability"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "name" in payload:
        parsed_name = _as_enum(
            payload["name"], _join(path, "name"), issues, allowed_values=BACKEND_NAMES
        )
        if parsed_name is not None:
            out["name"] = parsed_name
    if "model" in payload:
        parsed_model = _as_str(payload["model"], _join(path, "model"), issues, allow_empty=True)
        if parsed_model is not None:
            out["model"] = parsed_model
    if "availability" in payload:
        parsed_availability = _as_enum(
            payload["availability"],
            _join(path, "availability"),
            issues,
            allowed_values=AVAILABILITY_POLICIES,
        )
        if parsed_availability is not None:
            out["availability"] = parsed_availability
    return out


def _validate_backends(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, set(BACKEND_NAMES), path, issues)
    _require_keys(payload, set(BACKEND_NAMES), path, issues)

    out: dict[str, Any] = {}
    for name in BACKEND_NAMES:
        raw = payload.get(name)
        if raw is None:
            continue
        section_path = _join(path, name)
        section = _as_object(raw, section_path, issues)
        if section is None:
            continue
        out[name] = _validate_backend_tool(section, section_path, issues)
    return out


def _validate_backend_tool(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"executable", "default_model", "allowed_tools", "denied_tools", "permission_mode"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "executable" in payload:
        parsed_executable = _as_str(payload["executable"], _join(path, "executable"), issues)
        if parsed_executable is not None:
            out["executable"] = parsed_executable
    for key in ("default_model", "permission_mode"):
        if key in payload:
            parsed = _as_str(payload[key], _join(path, key), issues, allow_empty=True)
            if parsed is not None:
                out[key] = parsed
    for key in ("allowed_tools", "denied_tools"):
        if key in payload:
            parsed_list = _as_str_list(payload[key], _join(path, key), issues)
            if parsed_list is not None:
                out[key] = parsed_list
    return out


def _validate_language_model(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"enabled", "executable", "model", "timeout_seconds"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "enabled" in payload:
        parsed_enabled = _as_bool(payload["enabled"], _join(path, "enabled"), issues)
        if parsed_enabled is not None:
            out["enabled"] = parsed_enabled
    for key in ("executable", "model"):
        if key in payload:
            parsed = _as_str(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    if "timeout_seconds" in payload:
        parsed_timeout = _as_float(
            payload["timeout_seconds"], _join(path, "timeout_seconds"), issues, minimum=1.0
        )
        if parsed_timeout is not None:
            out["timeout_seconds"] = parsed_timeout
    return out


def _validate_publish(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"create_pr", "settle_seconds", "cleanup_workspaces"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in ("create_pr", "cleanup_workspaces"):
        if key in payload:
            parsed = _as_bool(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    if "settle_seconds" in payload:
        parsed_settle = _as_float(
            payload["settle_seconds"], _join(path, "settle_seconds"), issues, minimum=0.0
        )
        if parsed_settle is not None:
            out["settle_seconds"] = parsed_settle
    return out


def _validate_run(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"dry_run", "backend_timeout_seconds"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "dry_run" in payload:
        parsed_dry_run = _as_bool(payload["dry_run"], _join(path, "dry_run"), issues)
        if parsed_dry_run is not None:
            out["dry_run"] = parsed_dry_run
    if "backend_timeout_seconds" in payload:
        parsed_timeout = _as_float(
            payload["backend_timeout_seconds"],
            _join(path, "backend_timeout_seconds"),
            issues,
            minimum=1.0,
        )
        if parsed_timeout is not None:
            out["backend_timeout_seconds"] = parsed_timeout
    return out


def _validate_observability(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"log_level", "log_format", "log_to_stdout", "redact_secrets"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "log_level" in payload:
        raw_level = payload["log_level"]
        level_value = raw_level.upper() if isinstance(raw_level, str) else raw_level
        parsed_level = _as_enum(
            level_value, _join(path, "log_level"), issues, allowed_values=LOG_LEVELS
        )
        if parsed_level is not None:
            out["log_level"] = parsed_level
    if "log_format" in payload:
        parsed_format = _as_enum(
            payload["log_format"], _join(path, "log_format"), issues, allowed_values=LOG_FORMATS
        )
        if parsed_format is not None:
            out["log_format"] = parsed_format
    for key in ("log_to_stdout", "redact_secrets"):
        if key in payload:
            parsed = _as_bool(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(
    value: object, path: str, issues: _IssueCollector, *, allow_empty: bool = False
) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed and not allow_empty:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(
    value: object, path: str, issues: _IssueCollector, *, allow_empty: bool = False
) -> str | None:
    parsed = _as_str(value, path, issues, allow_empty=allow_empty)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_str_list(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    if not isinstance(value, (list, tuple)):
        issues.add(path, f"expected list of strings, got {type(value).__name__}")
        return None
    out: list[str] = []
    for index, item in enumerate(value):
        parsed = _as_str(item, f"{path}[{index}]", issues)
        if parsed is None:
            return None
        out.append(parsed)
    return out


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key in allowed:
            continue
        key_path = _join(path, key)
        if _looks_sensitive_key(key):
            issues.add(key_path, "embedded secret values are forbidden in snowyowl config")
        else:
            issues.add(key_path, "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _looks_sensitive_key(key: str) -> bool:
    normalized = _normalize_key(key)
    if "api_key" in normalized or "private_key" in normalized:
        return True
    tokens = tuple(token for token in normalized.split("_") if token)
    return any(token in _SENSITIVE_KEY_TOKENS for token in tokens)


def _normalize_key(key: str) -> str:
    with_boundaries = _CAMEL_CASE_BOUNDARY.sub(r"\1_\2", key.strip())
    return _NON_ALNUM.sub("_", with_boundaries.lower()).strip("_")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            else:
                nested: dict[str, Any] = {}
                _merge_into(nested, value)
                target[key] = nested
        else:
            target[key] = _deep_copy_value(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key in sorted(value):
        out[key] = _deep_copy_value(value[key])
    return out


def _deep_copy_value(value: object) -> Any:
    if isinstance(value, Mapping):
        return {key: _deep_copy_value(item) for key, item in value.items() if isinstance(key, str)}
    if isinstance(value, (list, tuple)):
        return [_deep_copy_value(item) for item in value]
    return copy.deepcopy(value)


def _redact_value(value: object) -> object:
    if isinstance(value, Mapping):
        out: dict[str, object] = {}
        for key in sorted(value):
            if _looks_sensitive_key(key):
                out[key] = "<redacted>"
            else:
                out[key] = _redact_value(value[key])
        return out
    if isinstance(value, (list, tuple)):
        return [_redact_value(item) for item in value]
    return value


__all__ = [
    "AVAILABILITY_POLICIES",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "LOG_FORMATS",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "SnowyOwlConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]
