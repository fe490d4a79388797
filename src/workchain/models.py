"""Core data models for workchain."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from workchain.errors import InvalidTransition


class WorkState(str, Enum):
    """Lifecycle states for a work item."""

    ENQUEUED = "enqueued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"

    @property
    def is_finished(self) -> bool:
        """True for terminal states."""
        return self in _FINISHED

    def can_transition_to(self, target: WorkState) -> bool:
        """Check whether moving from this state to ``target`` is legal."""
        return target in _TRANSITIONS[self]


_FINISHED = frozenset({WorkState.SUCCEEDED, WorkState.FAILED, WorkState.CANCELLED})

_TRANSITIONS: dict[WorkState, frozenset[WorkState]] = {
    WorkState.BLOCKED: frozenset({WorkState.ENQUEUED, WorkState.CANCELLED}),
    WorkState.ENQUEUED: frozenset({WorkState.RUNNING, WorkState.CANCELLED, WorkState.BLOCKED}),
    WorkState.RUNNING: frozenset({
        WorkState.SUCCEEDED,
        WorkState.FAILED,
        WorkState.ENQUEUED,  # rescheduled by the executor
        WorkState.CANCELLED,
    }),
    WorkState.SUCCEEDED: frozenset(),
    WorkState.FAILED: frozenset(),
    WorkState.CANCELLED: frozenset(),
}


def initial_state(has_prerequisite: bool, all_prerequisites_succeeded: bool) -> WorkState:
    """
    Compute the state a work item is created in.

    Work with at least one prerequisite that has not succeeded starts out
    BLOCKED; everything else is ENQUEUED. This is evaluated once, when the
    item is persisted.
    """
    if has_prerequisite and not all_prerequisites_succeeded:
        return WorkState.BLOCKED
    return WorkState.ENQUEUED


def check_transition(current: WorkState, target: WorkState) -> None:
    """Raise InvalidTransition if ``current -> target`` is not allowed."""
    if not current.can_transition_to(target):
        raise InvalidTransition(f"Cannot move work from {current.value} to {target.value}")


class ExistingWorkPolicy(str, Enum):
    """What to do when uniquely named work already exists."""

    KEEP_EXISTING = "keep"
    REPLACE_EXISTING = "replace"
    APPEND = "append"

    @classmethod
    def parse(cls, value: str | ExistingWorkPolicy) -> ExistingWorkPolicy:
        """Accept an enum member, its value, or its name (case-insensitive)."""
        if isinstance(value, cls):
            return value
        for policy in cls:
            if value.lower() in (policy.value, policy.name.lower()):
                return policy
        raise ValueError(f"Unknown policy: {value}. Use 'keep', 'replace', or 'append'.")


@dataclass
class WorkItem:
    """A unit of schedulable work."""

    id: str
    task: str  # Task type name
    params: dict[str, Any] = field(default_factory=dict)
    state: WorkState = WorkState.ENQUEUED
    tags: set[str] = field(default_factory=set)
    period_start_time: float | None = None
    created_at: float = 0.0
    started_at: float | None = None
    completed_at: float | None = None
    attempt: int = 1

    @classmethod
    def create(
        cls,
        task: str,
        *,
        params: dict[str, Any] | None = None,
        tags: set[str] | list[str] | tuple[str, ...] = (),
    ) -> WorkItem:
        """Build a new item with a fresh id."""
        return cls(
            id=uuid.uuid4().hex,
            task=task,
            params=dict(params or {}),
            tags=set(tags),
        )


@dataclass(frozen=True)
class Dependency:
    """Edge from a dependent item to one of its prerequisites."""

    work_id: str
    prerequisite_id: str


@dataclass(frozen=True)
class IdAndState:
    """Row shape returned by tag lookups."""

    id: str
    state: WorkState
