"""Closed registry of timeline file extensions.

Each (action, state) pair that may appear in the active timeline maps to
exactly one extension. The registry is built once at import time and
handed to the naming and timeline layers; it is never mutated.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from core.errors import TidemarkValidationError
from core.types import (
    CLEAN_ACTION,
    CLUSTERING_ACTION,
    COMMIT_ACTION,
    COMPACTION_ACTION,
    COMPLETED,
    DELTA_COMMIT_ACTION,
    INDEXING_ACTION,
    INFLIGHT,
    LOG_COMPACTION_ACTION,
    REPLACE_COMMIT_ACTION,
    REQUESTED,
    RESTORE_ACTION,
    ROLLBACK_ACTION,
    SAVE_SCHEMA_ACTION,
    SAVEPOINT_ACTION,
    InstantState,
)

ActionState = tuple[str, InstantState]


@dataclass(frozen=True)
class ExtensionRegistry:
    """Bidirectional, read-only (action, state) to extension table."""

    by_action_state: Mapping[ActionState, str]
    by_extension: Mapping[str, ActionState]

    @classmethod
    def from_pairs(cls, pairs: Mapping[ActionState, str]) -> "ExtensionRegistry":
        """Build a registry, rejecting duplicate extensions.

        Args:
            pairs: (action, state) to extension mapping.

        Returns:
            Frozen registry.

        Raises:
            TidemarkValidationError: If two pairs share an extension.
        """
        reverse: dict[str, ActionState] = {}
        for action_state, extension in pairs.items():
            if extension in reverse:
                raise TidemarkValidationError(
                    f"Extension '{extension}' is registered for both {reverse[extension]} "
                    f"and {action_state}. Each extension must map to one pair."
                )
            reverse[extension] = action_state
        return cls(
            by_action_state=MappingProxyType(dict(pairs)),
            by_extension=MappingProxyType(reverse),
        )

    def extension_for(self, action: str, state: InstantState) -> str:
        """Return the extension for a pair.

        Raises:
            TidemarkValidationError: If the pair has no on-disk form.
        """
        try:
            return self.by_action_state[(action, state)]
        except KeyError as error:
            raise TidemarkValidationError(
                f"Action '{action}' has no {state} form in the active timeline."
            ) from error

    def action_state_for(self, extension: str) -> ActionState | None:
        """Return the pair for an extension, or None when unregistered."""
        return self.by_extension.get(extension)

    def supports(self, action: str, state: InstantState) -> bool:
        return (action, state) in self.by_action_state

    @property
    def extensions(self) -> frozenset[str]:
        return frozenset(self.by_extension)

    def pairs(self) -> tuple[ActionState, ...]:
        """Return every registered (action, state) pair in registration order."""
        return tuple(self.by_action_state)


ACTIVE_TIMELINE_EXTENSIONS = ExtensionRegistry.from_pairs(
    {
        (COMMIT_ACTION, COMPLETED): ".commit",
        (COMMIT_ACTION, INFLIGHT): ".inflight",
        (COMMIT_ACTION, REQUESTED): ".commit.requested",
        (DELTA_COMMIT_ACTION, COMPLETED): ".deltacommit",
        (DELTA_COMMIT_ACTION, INFLIGHT): ".deltacommit.inflight",
        (DELTA_COMMIT_ACTION, REQUESTED): ".deltacommit.requested",
        (SAVEPOINT_ACTION, COMPLETED): ".savepoint",
        (SAVEPOINT_ACTION, INFLIGHT): ".savepoint.inflight",
        (CLEAN_ACTION, COMPLETED): ".clean",
        (CLEAN_ACTION, REQUESTED): ".clean.requested",
        (CLEAN_ACTION, INFLIGHT): ".clean.inflight",
        (COMPACTION_ACTION, INFLIGHT): ".compaction.inflight",
        (COMPACTION_ACTION, REQUESTED): ".compaction.requested",
        (RESTORE_ACTION, REQUESTED): ".restore.requested",
        (RESTORE_ACTION, INFLIGHT): ".restore.inflight",
        (RESTORE_ACTION, COMPLETED): ".restore",
        (LOG_COMPACTION_ACTION, INFLIGHT): ".logcompaction.inflight",
        (LOG_COMPACTION_ACTION, REQUESTED): ".logcompaction.requested",
        (ROLLBACK_ACTION, COMPLETED): ".rollback",
        (ROLLBACK_ACTION, REQUESTED): ".rollback.requested",
        (ROLLBACK_ACTION, INFLIGHT): ".rollback.inflight",
        (REPLACE_COMMIT_ACTION, REQUESTED): ".replacecommit.requested",
        (REPLACE_COMMIT_ACTION, INFLIGHT): ".replacecommit.inflight",
        (REPLACE_COMMIT_ACTION, COMPLETED): ".replacecommit",
        (INDEXING_ACTION, REQUESTED): ".indexing.requested",
        (INDEXING_ACTION, INFLIGHT): ".indexing.inflight",
        (INDEXING_ACTION, COMPLETED): ".indexing",
        (SAVE_SCHEMA_ACTION, REQUESTED): ".schemacommit.requested",
        (SAVE_SCHEMA_ACTION, INFLIGHT): ".schemacommit.inflight",
        (SAVE_SCHEMA_ACTION, COMPLETED): ".schemacommit",
        (CLUSTERING_ACTION, REQUESTED): ".clustering.requested",
        (CLUSTERING_ACTION, INFLIGHT): ".clustering.inflight",
    }
)
