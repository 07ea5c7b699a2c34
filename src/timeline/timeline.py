"""Immutable timeline views.

A timeline is an ordered tuple of instants. Every filter returns a new
view, so readers can narrow a loaded snapshot (completed only, pending
only, one action family) without touching storage.
"""

from __future__ import annotations

from typing import Callable, Iterable, Iterator

from core.types import (
    CLEAN_ACTION,
    CLUSTERING_ACTION,
    COMMIT_ACTIONS,
    COMPACTION_ACTION,
    INDEXING_ACTION,
    LOG_COMPACTION_ACTION,
    REPLACE_COMMIT_ACTION,
    RESTORE_ACTION,
    ROLLBACK_ACTION,
    SAVEPOINT_ACTION,
    Instant,
    completion_time_order_key,
    requested_time_order_key,
)


class Timeline:
    """Ordered, read-only collection of instants."""

    def __init__(self, instants: Iterable[Instant] = ()) -> None:
        self._instants: tuple[Instant, ...] = tuple(
            sorted(instants, key=requested_time_order_key)
        )

    @property
    def instants(self) -> tuple[Instant, ...]:
        return self._instants

    def __iter__(self) -> Iterator[Instant]:
        return iter(self._instants)

    def __len__(self) -> int:
        return len(self._instants)

    def filter(self, predicate: Callable[[Instant], bool]) -> "Timeline":
        return Timeline(instant for instant in self._instants if predicate(instant))

    def filter_completed_instants(self) -> "Timeline":
        return self.filter(lambda instant: instant.is_completed)

    def filter_pending_instants(self) -> "Timeline":
        """Requested and inflight instants."""
        return self.filter(lambda instant: not instant.is_completed)

    def filter_inflights(self) -> "Timeline":
        return self.filter(lambda instant: instant.is_inflight)

    def filter_requested(self) -> "Timeline":
        return self.filter(lambda instant: instant.is_requested)

    def filter_by_actions(self, actions: Iterable[str]) -> "Timeline":
        action_set = frozenset(actions)
        return self.filter(lambda instant: instant.action in action_set)

    def filter_pending_compaction(self) -> "Timeline":
        return self.filter(
            lambda instant: instant.action == COMPACTION_ACTION and not instant.is_completed
        )

    def filter_pending_log_compaction(self) -> "Timeline":
        return self.filter(
            lambda instant: instant.action == LOG_COMPACTION_ACTION and not instant.is_completed
        )

    def filter_pending_clustering(self) -> "Timeline":
        return self.filter(
            lambda instant: instant.action == CLUSTERING_ACTION and not instant.is_completed
        )

    def get_commits_timeline(self) -> "Timeline":
        """Commit, delta commit, replace commit, and clustering instants."""
        return self.filter_by_actions(COMMIT_ACTIONS)

    def get_write_timeline(self) -> "Timeline":
        """Commit-like instants plus pending compaction and log compaction."""
        return self.filter_by_actions(
            COMMIT_ACTIONS | {COMPACTION_ACTION, LOG_COMPACTION_ACTION}
        )

    def get_clean_timeline(self) -> "Timeline":
        return self.filter_by_actions((CLEAN_ACTION,))

    def get_rollback_timeline(self) -> "Timeline":
        return self.filter_by_actions((ROLLBACK_ACTION,))

    def get_restore_timeline(self) -> "Timeline":
        return self.filter_by_actions((RESTORE_ACTION,))

    def get_savepoint_timeline(self) -> "Timeline":
        return self.filter_by_actions((SAVEPOINT_ACTION,))

    def get_replace_timeline(self) -> "Timeline":
        return self.filter_by_actions((REPLACE_COMMIT_ACTION, CLUSTERING_ACTION))

    def get_index_timeline(self) -> "Timeline":
        return self.filter_by_actions((INDEXING_ACTION,))

    def find_instants_after(self, requested_time: str) -> "Timeline":
        return self.filter(lambda instant: instant.requested_time > requested_time)

    def find_instants_before(self, requested_time: str) -> "Timeline":
        return self.filter(lambda instant: instant.requested_time < requested_time)

    def find_instants_in_range(self, start_exclusive: str, end_inclusive: str) -> "Timeline":
        return self.filter(
            lambda instant: start_exclusive < instant.requested_time <= end_inclusive
        )

    def find_instants_completed_after(self, completion_time: str) -> "Timeline":
        """Completed instants whose completion time is after completion_time."""
        return self.filter(
            lambda instant: instant.is_completed
            and instant.completion_time is not None
            and instant.completion_time > completion_time
        )

    def get_instants_ordered_by_completion_time(self) -> tuple[Instant, ...]:
        return tuple(sorted(self._instants, key=completion_time_order_key))

    def first_instant(self) -> Instant | None:
        return self._instants[0] if self._instants else None

    def last_instant(self) -> Instant | None:
        return self._instants[-1] if self._instants else None

    def nth_instant(self, index: int) -> Instant | None:
        if -len(self._instants) <= index < len(self._instants):
            return self._instants[index]
        return None

    def count_instants(self) -> int:
        return len(self._instants)

    def empty(self) -> bool:
        return not self._instants

    def contains_instant(self, instant: Instant) -> bool:
        return instant in self._instants

    def contains_requested_time(self, requested_time: str) -> bool:
        return any(instant.requested_time == requested_time for instant in self._instants)

    def find_instant(self, instant: Instant) -> Instant | None:
        """Return the loaded copy of instant, carrying its completion time."""
        for candidate in self._instants:
            if candidate == instant:
                return candidate
        return None

    def is_before_timeline_starts(self, requested_time: str) -> bool:
        """Return whether requested_time precedes the first loaded instant."""
        first = self.first_instant()
        return first is not None and requested_time < first.requested_time

    def __repr__(self) -> str:
        rendered = ", ".join(str(instant) for instant in self._instants)
        return f"Timeline({rendered})"
