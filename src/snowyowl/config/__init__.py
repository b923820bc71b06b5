"""
snowyowl config package public API.

File: src/snowyowl/config/__init__.py

Purpose
- Export config loading/validation entrypoints, the typed settings tree and
  public error types.

Functional requirements
- Support loading from ``snowyowl.toml`` + ``SNOWYOWL_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from snowyowl.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    effective_config,
    load_config,
    normalize_paths,
)
from snowyowl.config.schema import (
    DEFAULT_CONFIG,
    ConfigSchemaVersion,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    SnowyOwlConfig,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
    validate_config,
)
from snowyowl.config.settings import Settings, settings_from_config

__all__ = [
    "ConfigLoadError",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "Settings",
    "SnowyOwlConfig",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "effective_config",
    "load_config",
    "merge_config",
    "normalize_paths",
    "redact_config",
    "settings_from_config",
    "validate_config",
]
