"""On-disk transition protocols.

Two layouts share one contract. The legacy layout moves a single file
through its stages with renames. The modern layout leaves every stage on
disk and publishes the next one with a write-once create. A completion
first takes a write-once claim keyed by requested time and action, so
exactly one writer publishes a completed file even without a lock.
ActiveTimeline validates instants and resolves payloads; a strategy
performs the one state-changing storage action last, so a failure before
it leaves prior state untouched.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable

from core.constants import COMPLETION_CLAIMS_DIR_NAME
from core.errors import (
    TidemarkAlreadyExistsError,
    TidemarkError,
    TidemarkNotFoundError,
    TidemarkStorageError,
)
from core.logging_config import get_logger
from core.types import COMPLETED, REQUESTED, Instant, state_rank
from store.timeline_store import TimelineStore, join_path
from timeline.file_naming import InstantFileNaming
from timeline.time_generator import TimeGenerator

_LOGGER = get_logger(__name__)


class TransitionStrategy(ABC):
    """Storage side of every lifecycle transition for one layout."""

    def __init__(
        self,
        store: TimelineStore,
        naming: InstantFileNaming,
        time_generator: TimeGenerator,
        timeline_path: str,
    ) -> None:
        self._store = store
        self._naming = naming
        self._time_generator = time_generator
        self._timeline_path = timeline_path

    @property
    def naming(self) -> InstantFileNaming:
        return self._naming

    def path_for(self, instant: Instant) -> str:
        return join_path(self._timeline_path, self._naming.format(instant))

    @abstractmethod
    def write_marker(self, instant: Instant, content: bytes, allow_overwrite: bool) -> None:
        """Create the file for a pending instant."""

    @abstractmethod
    def transition_pending(
        self,
        from_instant: Instant,
        to_instant: Instant,
        content: bytes | None,
        allow_redundant: bool,
    ) -> None:
        """Move a pending instant to another pending stage."""

    @abstractmethod
    def transition_to_complete(
        self,
        from_instant: Instant,
        to_instant: Instant,
        content: bytes | None,
        should_lock: bool,
        completion_time: str | None,
    ) -> Instant:
        """Complete an inflight instant and return it with its completion time."""

    @abstractmethod
    def write_complete(self, instant: Instant, content: bytes, should_lock: bool) -> Instant:
        """Create a completed instant that has no pending stages."""

    @abstractmethod
    def revert_complete_to_inflight(self, completed: Instant, inflight: Instant) -> None:
        """Undo a completion, keeping the request identity."""

    @abstractmethod
    def revert_inflight_to_requested(self, inflight: Instant, requested: Instant) -> None:
        """Return an inflight instant to its requested stage."""

    @abstractmethod
    def apply_layout_filter(self, instants: Iterable[Instant]) -> list[Instant]:
        """Reduce listed instants to the ones the timeline exposes."""

    def release_completion_claim(self, instant: Instant) -> None:
        """Drop a completion claim left by a writer that never published its file."""
        return None

    def _require_exists(self, instant: Instant, path: str) -> None:
        if not self._store.exists(path):
            raise self._not_found(instant, path)

    def _not_found(self, instant: Instant, path: str) -> TidemarkNotFoundError:
        return TidemarkNotFoundError(
            f"Expected timeline file {path} for {instant} does not exist. "
            "Reload the timeline; another writer may have moved or removed it.",
            path=path,
        )


class LegacyTransitionStrategy(TransitionStrategy):
    """Rename-based protocol: one file per instant, moved between stages."""

    def write_marker(self, instant: Instant, content: bytes, allow_overwrite: bool) -> None:
        self._store.create(self.path_for(instant), content, overwrite=allow_overwrite)

    def transition_pending(
        self,
        from_instant: Instant,
        to_instant: Instant,
        content: bytes | None,
        allow_redundant: bool,
    ) -> None:
        from_path = self.path_for(from_instant)
        self._require_exists(from_instant, from_path)
        self._rewrite_and_rename(from_path, self.path_for(to_instant), content)

    def transition_to_complete(
        self,
        from_instant: Instant,
        to_instant: Instant,
        content: bytes | None,
        should_lock: bool,
        completion_time: str | None,
    ) -> Instant:
        from_path = self.path_for(from_instant)
        if not self._store.exists(from_path):
            if self._store.exists(self.path_for(to_instant)):
                raise TidemarkAlreadyExistsError(
                    f"{to_instant.action} at {to_instant.requested_time} is already completed. "
                    "Another writer finished it; reload the timeline.",
                    path=self.path_for(to_instant),
                )
            raise self._not_found(from_instant, from_path)

        def _move(epoch_millis: int) -> Instant:
            minted_time = completion_time or self._time_generator.format_millis(epoch_millis)
            completed = _completed(to_instant, minted_time)
            self._rewrite_and_rename(from_path, self.path_for(completed), content)
            return completed

        return self._time_generator.consume_time(not should_lock, _move)

    def write_complete(self, instant: Instant, content: bytes, should_lock: bool) -> Instant:
        minted_time = self._time_generator.generate_time(skip_locking=not should_lock)
        completed = _completed(instant, minted_time)
        self._store.create(self.path_for(completed), content, overwrite=True)
        return completed

    def revert_complete_to_inflight(self, completed: Instant, inflight: Instant) -> None:
        inflight_path = self.path_for(inflight)
        if self._store.exists(inflight_path):
            _LOGGER.warning(
                "revert_skipped_inflight_present",
                instant=str(completed),
                inflight_path=inflight_path,
            )
            return
        self._rename_or_raise(self.path_for(completed), inflight_path)

    def revert_inflight_to_requested(self, inflight: Instant, requested: Instant) -> None:
        self.transition_pending(inflight, requested, None, allow_redundant=False)

    def apply_layout_filter(self, instants: Iterable[Instant]) -> list[Instant]:
        return list(instants)

    def _rewrite_and_rename(self, from_path: str, to_path: str, content: bytes | None) -> None:
        if content is not None:
            self._store.create(from_path, content, overwrite=True)
        try:
            self._rename_or_raise(from_path, to_path)
        except TidemarkAlreadyExistsError:
            # The rewrite may have recreated a file the winning writer already moved.
            if content is not None and self._store.delete(from_path):
                _LOGGER.info("stale_stage_file_removed", path=from_path)
            raise

    def _rename_or_raise(self, src: str, dst: str) -> None:
        if self._store.rename(src, dst):
            return
        if self._store.exists(dst):
            raise TidemarkAlreadyExistsError(
                f"Could not rename {src} to {dst}: target already exists. "
                "Another writer performed this transition; reload the timeline.",
                path=dst,
            )
        if not self._store.exists(src):
            raise TidemarkNotFoundError(
                f"Could not rename {src} to {dst}: source no longer exists.", path=src
            )
        raise TidemarkStorageError(
            f"Could not rename {src} to {dst}.", operation="rename", path=src
        )


class ImmutableTransitionStrategy(TransitionStrategy):
    """Write-once protocol: each stage is a new file, earlier stages stay."""

    def write_marker(self, instant: Instant, content: bytes, allow_overwrite: bool) -> None:
        path = self.path_for(instant)
        if allow_overwrite:
            self._store.create(path, content, overwrite=True)
        else:
            self._store.create_immutable(path, content)

    def transition_pending(
        self,
        from_instant: Instant,
        to_instant: Instant,
        content: bytes | None,
        allow_redundant: bool,
    ) -> None:
        self._require_exists(from_instant, self.path_for(from_instant))
        to_path = self.path_for(to_instant)
        if allow_redundant:
            self._store.create(to_path, content or b"", overwrite=True)
        else:
            self._store.create_immutable(to_path, content or b"")
        _LOGGER.info("instant_file_created", path=to_path)

    def transition_to_complete(
        self,
        from_instant: Instant,
        to_instant: Instant,
        content: bytes | None,
        should_lock: bool,
        completion_time: str | None,
    ) -> Instant:
        self._require_exists(from_instant, self.path_for(from_instant))
        return self._publish_completed(to_instant, content or b"", should_lock, completion_time)

    def write_complete(self, instant: Instant, content: bytes, should_lock: bool) -> Instant:
        return self._publish_completed(instant, content, should_lock, None)

    def revert_complete_to_inflight(self, completed: Instant, inflight: Instant) -> None:
        requested = inflight.with_state(REQUESTED)
        if self._naming.registry.supports(requested.action, REQUESTED):
            self._create_empty_if_missing(self.path_for(requested))
        self._create_empty_if_missing(self.path_for(inflight))
        self._store.delete(self._claim_path(completed))
        completed_path = self.path_for(completed)
        if not self._store.delete(completed_path):
            raise TidemarkNotFoundError(
                f"State reverting failed: completed file {completed_path} was not found.",
                path=completed_path,
            )

    def revert_inflight_to_requested(self, inflight: Instant, requested: Instant) -> None:
        inflight_path = self.path_for(inflight)
        if not self._store.delete(inflight_path):
            raise TidemarkNotFoundError(
                f"Could not revert {inflight}: inflight file {inflight_path} was not found.",
                path=inflight_path,
            )

    def release_completion_claim(self, instant: Instant) -> None:
        if self._find_completed_file(instant) is None and self._store.delete(
            self._claim_path(instant)
        ):
            _LOGGER.info("completion_claim_released", instant=str(instant))

    def apply_layout_filter(self, instants: Iterable[Instant]) -> list[Instant]:
        latest: dict[tuple[str, str], Instant] = {}
        for instant in instants:
            key = (instant.requested_time, instant.comparable_action)
            current = latest.get(key)
            if current is None or state_rank(instant.state) > state_rank(current.state):
                latest[key] = instant
        return list(latest.values())

    def _publish_completed(
        self,
        instant: Instant,
        content: bytes,
        should_lock: bool,
        completion_time: str | None,
    ) -> Instant:
        def _write(epoch_millis: int) -> Instant:
            minted_time = completion_time or self._time_generator.format_millis(epoch_millis)
            completed = _completed(instant, minted_time)
            existing = self._find_completed_file(instant)
            if existing is not None:
                raise self._already_completed(instant, join_path(self._timeline_path, existing))
            claim_path = self._claim_path(instant)
            try:
                self._store.create_immutable(claim_path, minted_time.encode("utf-8"))
            except TidemarkAlreadyExistsError as error:
                raise self._already_completed(instant, claim_path) from error
            path = self.path_for(completed)
            try:
                self._store.create_immutable(path, content)
            except TidemarkError:
                self._store.delete(claim_path)
                raise
            _LOGGER.info("instant_file_created", path=path)
            return completed

        return self._time_generator.consume_time(not should_lock, _write)

    def _already_completed(self, instant: Instant, path: str) -> TidemarkAlreadyExistsError:
        return TidemarkAlreadyExistsError(
            f"{instant.action} at {instant.requested_time} is already completed "
            f"(found {path}). Another writer finished it; reload the timeline.",
            path=path,
        )

    def _claim_path(self, instant: Instant) -> str:
        """Write-once marker naming the single writer allowed to complete a request."""
        claims_dir = join_path(self._timeline_path, COMPLETION_CLAIMS_DIR_NAME)
        return join_path(claims_dir, f"{instant.requested_time}.{instant.comparable_action}")

    def _find_completed_file(self, instant: Instant) -> str | None:
        for file_name in self._store.list(self._timeline_path):
            parsed = self._naming.parse(file_name)
            if (
                parsed is not None
                and parsed.is_completed
                and parsed.requested_time == instant.requested_time
                and parsed.comparable_action == instant.comparable_action
            ):
                return file_name
        return None

    def _create_empty_if_missing(self, path: str) -> None:
        if self._store.exists(path):
            return
        try:
            self._store.create(path, b"", overwrite=False)
        except TidemarkAlreadyExistsError:
            _LOGGER.info("revert_marker_already_present", path=path)


def _completed(instant: Instant, completion_time: str) -> Instant:
    return Instant(
        state=COMPLETED,
        action=instant.action,
        requested_time=instant.requested_time,
        completion_time=completion_time,
    )


def build_transition_strategy(
    legacy: bool,
    store: TimelineStore,
    naming: InstantFileNaming,
    time_generator: TimeGenerator,
    timeline_path: str,
) -> TransitionStrategy:
    """Return the protocol implementation for a layout."""
    strategy_cls = LegacyTransitionStrategy if legacy else ImmutableTransitionStrategy
    return strategy_cls(store, naming, time_generator, timeline_path)
