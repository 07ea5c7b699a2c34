"""Shared typed models.

This module defines the immutable instant model used by the naming,
storage, and timeline layers, plus the commit metadata shape read by
the last-commit queries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Mapping

from core.constants import SCHEMA_METADATA_KEY
from core.errors import TidemarkValidationError

InstantState = Literal["REQUESTED", "INFLIGHT", "COMPLETED"]
REQUESTED: InstantState = "REQUESTED"
INFLIGHT: InstantState = "INFLIGHT"
COMPLETED: InstantState = "COMPLETED"
INSTANT_STATES: tuple[InstantState, ...] = (REQUESTED, INFLIGHT, COMPLETED)
_STATE_RANK = {REQUESTED: 0, INFLIGHT: 1, COMPLETED: 2}

COMMIT_ACTION = "commit"
DELTA_COMMIT_ACTION = "deltacommit"
CLEAN_ACTION = "clean"
COMPACTION_ACTION = "compaction"
LOG_COMPACTION_ACTION = "logcompaction"
ROLLBACK_ACTION = "rollback"
RESTORE_ACTION = "restore"
REPLACE_COMMIT_ACTION = "replacecommit"
CLUSTERING_ACTION = "clustering"
INDEXING_ACTION = "indexing"
SAVEPOINT_ACTION = "savepoint"
SAVE_SCHEMA_ACTION = "schemacommit"
VALID_ACTIONS = (
    COMMIT_ACTION,
    DELTA_COMMIT_ACTION,
    CLEAN_ACTION,
    COMPACTION_ACTION,
    LOG_COMPACTION_ACTION,
    ROLLBACK_ACTION,
    RESTORE_ACTION,
    REPLACE_COMMIT_ACTION,
    CLUSTERING_ACTION,
    INDEXING_ACTION,
    SAVEPOINT_ACTION,
    SAVE_SCHEMA_ACTION,
)
COMMIT_ACTIONS = frozenset(
    {COMMIT_ACTION, DELTA_COMMIT_ACTION, REPLACE_COMMIT_ACTION, CLUSTERING_ACTION}
)

# Pending table services complete under a different action.
COMPARABLE_ACTIONS: Mapping[str, str] = {
    COMPACTION_ACTION: COMMIT_ACTION,
    LOG_COMPACTION_ACTION: DELTA_COMMIT_ACTION,
    CLUSTERING_ACTION: REPLACE_COMMIT_ACTION,
}


@dataclass(frozen=True)
class Instant:
    """One occurrence of a table operation at one lifecycle stage.

    Equality and hashing cover state, action, and requested time only;
    the completion time is informational and may be absent on instants
    built by callers or parsed from legacy file names.

    Attributes:
        state: Lifecycle stage.
        action: Operation kind.
        requested_time: Identifier assigned at creation, never changed.
        completion_time: Time the instant completed, when known.
    """

    state: InstantState
    action: str
    requested_time: str
    completion_time: str | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.state not in INSTANT_STATES:
            raise TidemarkValidationError(
                f"Unknown instant state '{self.state}'. Use one of {', '.join(INSTANT_STATES)}."
            )
        if self.action not in VALID_ACTIONS:
            raise TidemarkValidationError(
                f"Unknown instant action '{self.action}'. Use one of {', '.join(VALID_ACTIONS)}."
            )
        if not self.requested_time:
            raise TidemarkValidationError("Instant requested time must be a non-empty string.")

    @property
    def is_requested(self) -> bool:
        return self.state == REQUESTED

    @property
    def is_inflight(self) -> bool:
        return self.state == INFLIGHT

    @property
    def is_completed(self) -> bool:
        return self.state == COMPLETED

    @property
    def comparable_action(self) -> str:
        """Action this instant is ordered and grouped under."""
        return COMPARABLE_ACTIONS.get(self.action, self.action)

    def with_state(self, state: InstantState, action: str | None = None) -> "Instant":
        """Return the same requested time at another stage, dropping completion time."""
        return Instant(
            state=state, action=action or self.action, requested_time=self.requested_time
        )

    def __str__(self) -> str:
        suffix = f"__{self.completion_time}" if self.completion_time else ""
        return f"[{self.requested_time}__{self.action}__{self.state}{suffix}]"


def requested_time_order_key(instant: Instant) -> tuple[str, str, str, int]:
    """Sort key ordering instants by requested time, then completion time, action and stage.

    Pending instants carry no completion time and sort ahead of completed
    instants sharing their requested time.
    """
    return (
        instant.requested_time,
        instant.completion_time or "",
        instant.comparable_action,
        _STATE_RANK[instant.state],
    )


def completion_time_order_key(instant: Instant) -> tuple[int, str, str, int]:
    """Sort key ordering completed instants by completion time, pending ones last."""
    if instant.is_completed and instant.completion_time:
        return (0, instant.completion_time, instant.requested_time, _STATE_RANK[instant.state])
    return (1, instant.requested_time, instant.comparable_action, _STATE_RANK[instant.state])


def state_rank(state: InstantState) -> int:
    """Return the lifecycle rank of a state (REQUESTED lowest)."""
    return _STATE_RANK[state]


_SCHEMA_PRESERVING_OPERATIONS = frozenset(
    {"compact", "log_compact", "cluster", "index", "delete_partition"}
)


def can_update_schema(operation_type: str) -> bool:
    """Return whether an operation may carry a new writer schema."""
    return operation_type not in _SCHEMA_PRESERVING_OPERATIONS


@dataclass(frozen=True)
class CommitMetadata:
    """Decoded payload of a completed commit-like instant.

    Attributes:
        operation_type: Write operation that produced the commit.
        partition_to_write_files: Relative data file paths per partition.
        extra_metadata: Free-form string metadata, including the writer schema.
    """

    operation_type: str = "unknown"
    partition_to_write_files: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    extra_metadata: Mapping[str, str] = field(default_factory=dict)

    @property
    def schema(self) -> str | None:
        value = self.extra_metadata.get(SCHEMA_METADATA_KEY)
        return value or None

    @property
    def has_written_files(self) -> bool:
        return any(files for files in self.partition_to_write_files.values())


@dataclass(frozen=True)
class RequestedReplaceMetadata:
    """Plan payload stored on a requested replace or clustering instant."""

    operation_type: str = "unknown"
    partitions: tuple[str, ...] = ()
    extra_metadata: Mapping[str, str] = field(default_factory=dict)
