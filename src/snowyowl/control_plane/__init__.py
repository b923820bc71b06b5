"""
snowyowl — control plane

File: src/snowyowl/control_plane/__init__.py

Purpose
- Run orchestration, per-group state tracking and prerequisite checks.
"""

from snowyowl.control_plane.group_state import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATES,
    GroupRun,
    GroupState,
)
from snowyowl.control_plane.orchestrator import (
    GroupReport,
    Orchestrator,
    RepositoryReport,
    RunReport,
)
from snowyowl.control_plane.prerequisites import (
    PrerequisiteCheck,
    PrerequisiteReport,
    check_prerequisites,
    pull_requests_enabled,
    require_prerequisites,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "GroupReport",
    "GroupRun",
    "GroupState",
    "Orchestrator",
    "PrerequisiteCheck",
    "PrerequisiteReport",
    "RepositoryReport",
    "RunReport",
    "TERMINAL_STATES",
    "check_prerequisites",
    "pull_requests_enabled",
    "require_prerequisites",
]
