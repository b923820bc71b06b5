"""Lifecycle state of one task group inside a repository run."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Final

from snowyowl.errors import InvalidTransitionError


class GroupState(StrEnum):
    IDLE = "idle"
    WORKSPACE_READY = "workspace_ready"
    IMPLEMENTING = "implementing"
    COMMITTED = "committed"
    PUBLISHED = "published"
    LOCAL_ONLY = "local_only"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES: Final[frozenset[GroupState]] = frozenset(
    {GroupState.PUBLISHED, GroupState.LOCAL_ONLY, GroupState.FAILED}
)

ALLOWED_TRANSITIONS: Final[Mapping[GroupState, frozenset[GroupState]]] = {
    GroupState.IDLE: frozenset({GroupState.WORKSPACE_READY, GroupState.FAILED}),
    GroupState.WORKSPACE_READY: frozenset({GroupState.IMPLEMENTING, GroupState.FAILED}),
    GroupState.IMPLEMENTING: frozenset({GroupState.COMMITTED, GroupState.FAILED}),
    GroupState.COMMITTED: frozenset(
        {
            GroupState.IMPLEMENTING,
            GroupState.PUBLISHED,
            GroupState.LOCAL_ONLY,
            GroupState.FAILED,
        }
    ),
    GroupState.PUBLISHED: frozenset(),
    GroupState.LOCAL_ONLY: frozenset(),
    GroupState.FAILED: frozenset(),
}


@dataclass(slots=True)
class GroupRun:
    """Mutable state holder; every change goes through :meth:`advance`."""

    lead_title: str
    state: GroupState = GroupState.IDLE
    history: list[GroupState] = field(default_factory=lambda: [GroupState.IDLE])

    def can_advance(self, target: GroupState) -> bool:
        return target in ALLOWED_TRANSITIONS[self.state]

    def advance(self, target: GroupState) -> GroupState:
        if not self.can_advance(target):
            raise InvalidTransitionError(
                f"task group {self.lead_title!r}: {self.state.value} -> {target.value} "
                "is not a valid transition"
            )
        self.state = target
        self.history.append(target)
        return target

    def fail(self) -> GroupState:
        return self.advance(GroupState.FAILED)

    @property
    def finished(self) -> bool:
        return self.state.terminal


__all__ = ["ALLOWED_TRANSITIONS", "GroupRun", "GroupState", "TERMINAL_STATES"]
