"""Active timeline state machine.

This module owns the lifecycle of every instant in a table's timeline:
creation, requested-to-inflight and inflight-to-completed transitions,
recovery reverts, scoped deletes, and payload reads. Each operation
checks its preconditions first, resolves file paths, and then hands the
single state-changing storage action to the layout's transition strategy.
"""

from __future__ import annotations

import io
from typing import BinaryIO, Iterator

from core.config import TidemarkConfig
from core.errors import TidemarkNotFoundError, TidemarkValidationError
from core.logging_config import get_logger
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
    CommitMetadata,
    Instant,
    RequestedReplaceMetadata,
    can_update_schema,
    requested_time_order_key,
)
from store.store_factory import create_timeline_store
from store.timeline_store import TimelineStore, join_path
from timeline.extensions import ACTIVE_TIMELINE_EXTENSIONS, ExtensionRegistry
from timeline.file_naming import file_naming_for_layout
from timeline.payload_codec import JsonPayloadCodec, PayloadCodec, commit_metadata_from_payload
from timeline.time_generator import TimeGenerator
from timeline.timeline import Timeline
from timeline.transitions import build_transition_strategy

_LOGGER = get_logger(__name__)


class ActiveTimeline(Timeline):
    """Loaded view of a table timeline plus the operations that change it.

    The loaded instants are a snapshot. Mutations go straight to storage
    and become visible to readers after ``reload()``.
    """

    def __init__(
        self,
        config: TidemarkConfig,
        store: TimelineStore | None = None,
        time_generator: TimeGenerator | None = None,
        codec: PayloadCodec | None = None,
        registry: ExtensionRegistry = ACTIVE_TIMELINE_EXTENSIONS,
        apply_layout_filter: bool = True,
    ) -> None:
        """Open the timeline under config.table_root and load it.

        Args:
            config: Runtime config naming the table and its layout.
            store: Storage backend; selected from the table root when omitted.
            time_generator: Completion-time source; built from config when omitted.
            codec: Payload encoder for plans and metadata.
            registry: Extension registry used for naming and parsing.
            apply_layout_filter: Keep only each instant's latest state on reload.

        Raises:
            TidemarkStorageError: If the timeline cannot be listed.
        """
        super().__init__(())
        self._config = config
        self._store = store or create_timeline_store(config)
        self._time_generator = time_generator or TimeGenerator.from_config(config)
        self._codec: PayloadCodec = codec or JsonPayloadCodec()
        self._registry = registry
        self._naming = file_naming_for_layout(config.timeline_layout, registry)
        self._timeline_path = config.timeline_path
        self._apply_layout_filter = apply_layout_filter
        self._strategy = build_transition_strategy(
            config.is_legacy_layout,
            self._store,
            self._naming,
            self._time_generator,
            self._timeline_path,
        )
        self.reload()

    @property
    def config(self) -> TidemarkConfig:
        return self._config

    @property
    def timeline_path(self) -> str:
        return self._timeline_path

    def reload(self) -> "ActiveTimeline":
        """Re-list storage and replace the loaded instants.

        Returns:
            This timeline, refreshed in place.
        """
        parsed = [
            instant
            for instant in (
                self._naming.parse(file_name)
                for file_name in self._store.list(self._timeline_path)
            )
            if instant is not None
        ]
        if self._apply_layout_filter:
            parsed = self._strategy.apply_layout_filter(parsed)
        self._instants = tuple(sorted(parsed, key=requested_time_order_key))
        _LOGGER.info(
            "timeline_reloaded",
            timeline_path=self._timeline_path,
            instant_count=len(self._instants),
        )
        return self

    def get_valid_extensions(self) -> frozenset[str]:
        return self._registry.extensions

    def create_new_instant_time(self, should_lock: bool = True) -> str:
        """Mint a new instant time for a caller about to create an instant."""
        return self._time_generator.generate_time(skip_locking=not should_lock)

    # Creation

    def create_new_instant(self, instant: Instant) -> None:
        """Write the empty marker for a new pending instant.

        Raises:
            TidemarkValidationError: If instant is completed or unregistered.
            TidemarkAlreadyExistsError: If the marker already exists.
        """
        _require(
            not instant.is_completed,
            f"Cannot create {instant} as a new instant: it is already COMPLETED. "
            "Use create_complete_instant for single-shot completions.",
        )
        self._require_registered(instant)
        self._strategy.write_marker(instant, b"", allow_overwrite=False)
        _LOGGER.info("instant_created", instant=str(instant))

    def create_complete_instant(self, instant: Instant) -> Instant:
        """Write a completed instant with no pending stages.

        Returns:
            The completed instant carrying its minted completion time.
        """
        _require(
            instant.is_completed,
            f"create_complete_instant expects a COMPLETED instant, got {instant}.",
        )
        self._require_registered(instant)
        completed = self._strategy.write_complete(instant, b"", should_lock=True)
        _LOGGER.info("instant_completed", instant=str(completed))
        return completed

    def create_requested_commit_with_replace_metadata(
        self, requested_time: str, action: str
    ) -> Instant:
        """Create a requested instant carrying an empty replace plan."""
        instant = Instant(state=REQUESTED, action=action, requested_time=requested_time)
        self._require_registered(instant)
        self._strategy.write_marker(
            instant, self._encode(RequestedReplaceMetadata()), allow_overwrite=False
        )
        _LOGGER.info("instant_created", instant=str(instant))
        return instant

    # Requested -> inflight

    def transition_requested_to_inflight(
        self,
        requested: Instant,
        metadata: object | None = None,
        allow_redundant_transitions: bool = False,
    ) -> Instant:
        """Move a requested instant to inflight.

        Args:
            requested: Instant in REQUESTED state.
            metadata: Optional payload for the inflight file.
            allow_redundant_transitions: Overwrite an existing inflight file.

        Returns:
            The inflight instant.

        Raises:
            TidemarkValidationError: If requested is not REQUESTED.
            TidemarkNotFoundError: If the requested file is absent.
            TidemarkAlreadyExistsError: If the inflight file already exists.
        """
        _require(requested.is_requested, f"Instant {requested} is in the wrong state.")
        return self._transition_pending_to_inflight(
            requested, metadata, allow_redundant_transitions
        )

    def transition_compaction_requested_to_inflight(self, requested: Instant) -> Instant:
        return self._transition_typed_requested(requested, COMPACTION_ACTION)

    def transition_log_compaction_requested_to_inflight(self, requested: Instant) -> Instant:
        return self._transition_typed_requested(requested, LOG_COMPACTION_ACTION)

    def transition_clean_requested_to_inflight(self, requested: Instant) -> Instant:
        return self._transition_typed_requested(requested, CLEAN_ACTION)

    def transition_rollback_requested_to_inflight(self, requested: Instant) -> Instant:
        return self._transition_typed_requested(requested, ROLLBACK_ACTION)

    def transition_restore_requested_to_inflight(self, requested: Instant) -> Instant:
        return self._transition_typed_requested(requested, RESTORE_ACTION)

    def transition_index_requested_to_inflight(self, requested: Instant) -> Instant:
        return self._transition_typed_requested(requested, INDEXING_ACTION)

    def transition_replace_requested_to_inflight(
        self, requested: Instant, metadata: object | None = None
    ) -> Instant:
        return self._transition_typed_requested(requested, REPLACE_COMMIT_ACTION, metadata)

    def transition_cluster_requested_to_inflight(
        self, requested: Instant, metadata: object | None = None
    ) -> Instant:
        return self._transition_typed_requested(requested, CLUSTERING_ACTION, metadata)

    # Inflight -> completed

    def save_as_complete(
        self,
        inflight: Instant,
        metadata: object | None,
        should_lock: bool = True,
        completion_time: str | None = None,
    ) -> Instant:
        """Complete an inflight instant under its own action.

        Args:
            inflight: Instant in INFLIGHT state.
            metadata: Payload written to the completed file.
            should_lock: Mint the completion time under the timeline lock.
            completion_time: Explicit completion time instead of a minted one.

        Returns:
            The completed instant with its completion time.

        Raises:
            TidemarkValidationError: If inflight is not INFLIGHT.
            TidemarkNotFoundError: If the inflight file is absent.
            TidemarkAlreadyExistsError: If another writer completed it first.
        """
        _require(
            inflight.is_inflight,
            f"Could not mark {inflight} as complete: only INFLIGHT instants can complete.",
        )
        return self._complete(inflight, inflight.action, metadata, should_lock, completion_time)

    def transition_clean_inflight_to_complete(
        self, should_lock: bool, inflight: Instant, metadata: object | None
    ) -> Instant:
        return self._complete_typed(inflight, CLEAN_ACTION, CLEAN_ACTION, metadata, should_lock)

    def transition_rollback_inflight_to_complete(
        self, should_lock: bool, inflight: Instant, metadata: object | None
    ) -> Instant:
        return self._complete_typed(
            inflight, ROLLBACK_ACTION, ROLLBACK_ACTION, metadata, should_lock
        )

    def transition_replace_inflight_to_complete(
        self, should_lock: bool, inflight: Instant, metadata: object | None
    ) -> Instant:
        return self._complete_typed(
            inflight, REPLACE_COMMIT_ACTION, REPLACE_COMMIT_ACTION, metadata, should_lock
        )

    def transition_cluster_inflight_to_complete(
        self, should_lock: bool, inflight: Instant, metadata: object | None
    ) -> Instant:
        return self._complete_typed(
            inflight, CLUSTERING_ACTION, REPLACE_COMMIT_ACTION, metadata, should_lock
        )

    def transition_compaction_inflight_to_complete(
        self, should_lock: bool, inflight: Instant, metadata: object | None
    ) -> Instant:
        return self._complete_typed(
            inflight, COMPACTION_ACTION, COMMIT_ACTION, metadata, should_lock
        )

    def transition_log_compaction_inflight_to_complete(
        self, should_lock: bool, inflight: Instant, metadata: object | None
    ) -> Instant:
        return self._complete_typed(
            inflight, LOG_COMPACTION_ACTION, DELTA_COMMIT_ACTION, metadata, should_lock
        )

    # Recovery

    def revert_to_inflight(self, completed: Instant) -> Instant:
        """Undo a completion, choosing the inflight form the instant came from.

        Returns:
            The inflight instant now on the timeline.
        """
        _require(completed.is_completed, f"Cannot revert {completed}: it is not COMPLETED.")
        inflight = Instant(
            state=INFLIGHT,
            action=self._pending_action_for(completed),
            requested_time=completed.requested_time,
        )
        self.revert_complete_to_inflight(completed, inflight)
        _LOGGER.info("instant_reverted", instant=str(completed), to=str(inflight))
        return inflight

    def revert_complete_to_inflight(self, completed: Instant, inflight: Instant) -> None:
        """Return a completed instant to inflight without losing its request.

        Raises:
            TidemarkValidationError: If the states or requested times do not match.
            TidemarkNotFoundError: If the completed file cannot be located.
        """
        _require(completed.is_completed, f"Cannot revert {completed}: it is not COMPLETED.")
        _require(inflight.is_inflight, f"Revert target {inflight} must be INFLIGHT.")
        _require_same_request(completed, inflight)
        self._require_registered(inflight)
        resolved = self._resolve_completed(completed)
        self._strategy.revert_complete_to_inflight(resolved, inflight)

    def revert_instant_from_inflight_to_requested(self, inflight: Instant) -> Instant:
        """Return an inflight instant to requested.

        Returns:
            The requested instant.
        """
        _require(inflight.is_inflight, f"Cannot revert {inflight} to requested: not INFLIGHT.")
        requested = inflight.with_state(REQUESTED)
        self._require_registered(requested)
        self._strategy.revert_inflight_to_requested(inflight, requested)
        _LOGGER.info("instant_reverted", instant=str(inflight), to=str(requested))
        return requested

    def revert_log_compaction_inflight_to_requested(self, inflight: Instant) -> Instant:
        _require_action(inflight, LOG_COMPACTION_ACTION)
        return self.revert_instant_from_inflight_to_requested(inflight)

    # Deletes

    def delete_inflight(self, instant: Instant) -> None:
        _require(
            instant.is_inflight, f"delete_inflight expects an INFLIGHT instant, got {instant}."
        )
        self._delete_instant_file(instant)

    def delete_pending(self, instant: Instant) -> None:
        _require(
            not instant.is_completed,
            f"delete_pending expects a REQUESTED or INFLIGHT instant, got {instant}.",
        )
        self._delete_instant_file(instant)

    def delete_completed_rollback(self, instant: Instant) -> None:
        _require(
            instant.is_completed,
            f"delete_completed_rollback expects a COMPLETED instant, got {instant}.",
        )
        _require_action(instant, ROLLBACK_ACTION)
        self._delete_instant_file(instant)

    def delete_compaction_requested(self, instant: Instant) -> None:
        _require(
            instant.is_requested,
            f"delete_compaction_requested expects REQUESTED, got {instant}.",
        )
        _require_action(instant, COMPACTION_ACTION)
        self._delete_instant_file(instant)

    def delete_empty_instant_if_exists(self, instant: Instant) -> None:
        """Purge an instant whose payload is empty; absent files are skipped.

        Raises:
            TidemarkValidationError: If the instant's payload is not empty.
        """
        path = self._find_path(instant)
        if path is None or not self._store.exists(path):
            _LOGGER.warning("instant_delete_skipped", instant=str(instant), reason="absent")
            return
        _require(
            not self._store.open(path),
            f"Refusing to delete {instant}: its payload at {path} is not empty.",
        )
        self._delete_path(instant, path, missing_ok=True)

    def delete_instant_file_if_exists(self, instant: Instant) -> None:
        path = self._find_path(instant)
        if path is None:
            _LOGGER.warning("instant_delete_skipped", instant=str(instant), reason="absent")
            return
        self._delete_path(instant, path, missing_ok=True)

    # Plans

    def save_to_compaction_requested(
        self, instant: Instant, plan: object, overwrite: bool = False
    ) -> None:
        self._save_plan(instant, COMPACTION_ACTION, plan, overwrite)

    def save_to_log_compaction_requested(
        self, instant: Instant, plan: object, overwrite: bool = False
    ) -> None:
        self._save_plan(instant, LOG_COMPACTION_ACTION, plan, overwrite)

    def save_to_pending_replace_commit(self, instant: Instant, metadata: object) -> None:
        self._save_plan(instant, REPLACE_COMMIT_ACTION, metadata, overwrite=False)

    def save_to_pending_cluster_commit(self, instant: Instant, metadata: object) -> None:
        self._save_plan(instant, CLUSTERING_ACTION, metadata, overwrite=False)

    def save_to_clean_requested(self, instant: Instant, plan: object | None) -> None:
        self._save_plan(instant, CLEAN_ACTION, plan, overwrite=False)

    def save_to_rollback_requested(self, instant: Instant, plan: object) -> None:
        self._save_plan(instant, ROLLBACK_ACTION, plan, overwrite=False)

    def save_to_restore_requested(self, instant: Instant, plan: object) -> None:
        self._save_plan(instant, RESTORE_ACTION, plan, overwrite=False)

    def save_to_pending_index_action(self, instant: Instant, plan: object) -> None:
        self._save_plan(instant, INDEXING_ACTION, plan, overwrite=False)

    # Reads

    def get_instant_details(self, instant: Instant) -> bytes:
        """Return an instant's raw payload.

        Raises:
            TidemarkNotFoundError: If the instant's file is absent.
        """
        return self._store.open(self._resolve_path(instant))

    def get_content_stream(self, instant: Instant) -> BinaryIO:
        return io.BytesIO(self.get_instant_details(instant))

    def read_cleaner_info_as_bytes(self, instant: Instant) -> bytes:
        return self.get_instant_details(instant)

    def read_compaction_plan_as_bytes(self, instant: Instant) -> bytes:
        return self.get_instant_details(instant)

    def is_empty(self, instant: Instant) -> bool:
        """Return whether the instant's persisted payload has no bytes."""
        return not self.get_instant_details(instant)

    def get_last_commit_metadata_with_valid_schema(
        self,
    ) -> tuple[Instant, CommitMetadata] | None:
        """Return the latest completed commit that recorded a writer schema."""
        for instant, metadata in self._iter_commit_metadata():
            if can_update_schema(metadata.operation_type) and metadata.schema:
                return instant, metadata
        return None

    def get_last_commit_metadata_with_valid_data(
        self,
    ) -> tuple[Instant, CommitMetadata] | None:
        """Return the latest completed commit that wrote at least one file."""
        for instant, metadata in self._iter_commit_metadata():
            if metadata.has_written_files:
                return instant, metadata
        return None

    def copy_instant(self, instant: Instant, dst_dir: str) -> str:
        """Copy an instant's file into dst_dir, replacing any existing copy.

        Returns:
            Destination path.
        """
        src_path = self._resolve_path(instant)
        dst_path = join_path(dst_dir, src_path.rsplit("/", 1)[-1])
        self._store.make_dirs(dst_dir)
        self._store.create(dst_path, self._store.open(src_path), overwrite=True)
        _LOGGER.info("instant_copied", instant=str(instant), dst_path=dst_path)
        return dst_path

    # Internals

    def _transition_typed_requested(
        self, requested: Instant, action: str, metadata: object | None = None
    ) -> Instant:
        _require_action(requested, action)
        _require(
            requested.is_requested,
            f"Transition to inflight requested for {requested}, which is not REQUESTED.",
        )
        return self._transition_pending_to_inflight(requested, metadata, False)

    def _transition_pending_to_inflight(
        self, requested: Instant, metadata: object | None, allow_redundant: bool
    ) -> Instant:
        inflight = requested.with_state(INFLIGHT)
        self._require_registered(requested)
        self._require_registered(inflight)
        content = None if metadata is None else self._encode(metadata)
        self._strategy.transition_pending(requested, inflight, content, allow_redundant)
        _LOGGER.info("instant_transitioned", instant=str(requested), to=str(inflight))
        return inflight

    def _complete_typed(
        self,
        inflight: Instant,
        pending_action: str,
        completed_action: str,
        metadata: object | None,
        should_lock: bool,
    ) -> Instant:
        _require_action(inflight, pending_action)
        _require(
            inflight.is_inflight,
            f"Could not mark {inflight} as complete: only INFLIGHT instants can complete.",
        )
        return self._complete(inflight, completed_action, metadata, should_lock, None)

    def _complete(
        self,
        inflight: Instant,
        completed_action: str,
        metadata: object | None,
        should_lock: bool,
        completion_time: str | None,
    ) -> Instant:
        target = Instant(
            state=COMPLETED, action=completed_action, requested_time=inflight.requested_time
        )
        self._require_registered(inflight)
        self._require_registered(target)
        content = None if metadata is None else self._encode(metadata)
        completed = self._strategy.transition_to_complete(
            inflight, target, content, should_lock, completion_time
        )
        _LOGGER.info(
            "instant_completed",
            instant=str(completed),
            completion_time=completed.completion_time,
        )
        return completed

    def _save_plan(
        self, instant: Instant, action: str, plan: object | None, overwrite: bool
    ) -> None:
        _require_action(instant, action)
        _require(
            instant.is_requested,
            f"Plans are stored on REQUESTED instants; got {instant}.",
        )
        self._require_registered(instant)
        content = b"" if plan is None else self._encode(plan)
        self._strategy.write_marker(instant, content, allow_overwrite=overwrite)
        _LOGGER.info("instant_created", instant=str(instant), overwrite=overwrite)

    def _iter_commit_metadata(self) -> Iterator[tuple[Instant, CommitMetadata]]:
        completed = self.get_commits_timeline().filter_completed_instants().instants
        for instant in sorted(completed, key=lambda item: item.requested_time, reverse=True):
            payload = self._codec.deserialize(self.get_instant_details(instant))
            yield instant, commit_metadata_from_payload(payload)

    def _pending_action_for(self, completed: Instant) -> str:
        """Return the action a completed instant ran under while pending."""
        for file_name in self._store.list(self._timeline_path):
            parsed = self._naming.parse(file_name)
            if (
                parsed is not None
                and not parsed.is_completed
                and parsed.requested_time == completed.requested_time
                and parsed.comparable_action == completed.action
            ):
                return parsed.action
        return completed.action

    def _resolve_completed(self, instant: Instant) -> Instant:
        """Return instant with its completion time when the layout names files by it.

        Raises:
            TidemarkNotFoundError: If no completed file exists for the instant.
        """
        if not instant.is_completed or instant.completion_time:
            return instant
        if not self._naming.embeds_completion_time:
            return instant
        loaded = self.find_instant(instant)
        if (
            loaded is not None
            and loaded.completion_time
            and self._store.exists(self._strategy.path_for(loaded))
        ):
            return loaded
        for file_name in self._store.list(self._timeline_path):
            if self._naming.is_completed_file_of(file_name, instant):
                parsed = self._naming.parse(file_name)
                if parsed is not None:
                    return parsed
        raise TidemarkNotFoundError(
            f"Cannot find completed instant {instant} in {self._timeline_path}. "
            "Reload the timeline or pass the instant's completion time.",
            path=self._timeline_path,
        )

    def _resolve_path(self, instant: Instant) -> str:
        self._require_registered(instant)
        return self._strategy.path_for(self._resolve_completed(instant))

    def _find_path(self, instant: Instant) -> str | None:
        try:
            return self._resolve_path(instant)
        except TidemarkNotFoundError:
            return None

    def _delete_instant_file(self, instant: Instant) -> None:
        self._delete_path(instant, self._resolve_path(instant), missing_ok=False)

    def _delete_path(self, instant: Instant, path: str, missing_ok: bool) -> None:
        if self._store.delete(path):
            _LOGGER.info("instant_deleted", instant=str(instant), path=path)
            self._strategy.release_completion_claim(instant)
            return
        if missing_ok:
            _LOGGER.warning("instant_delete_skipped", instant=str(instant), path=path)
            return
        raise TidemarkNotFoundError(
            f"Could not delete {instant}: {path} does not exist. "
            "Reload the timeline; another writer may have removed it.",
            path=path,
        )

    def _require_registered(self, instant: Instant) -> None:
        self._registry.extension_for(instant.action, instant.state)

    def _encode(self, payload: object) -> bytes:
        return self._codec.serialize(payload)


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise TidemarkValidationError(message)


def _require_action(instant: Instant, action: str) -> None:
    _require(
        instant.action == action,
        f"Expected a {action} instant, got {instant}.",
    )


def _require_same_request(left: Instant, right: Instant) -> None:
    _require(
        left.requested_time == right.requested_time,
        f"{left} and {right} are not consistent: requested times differ.",
    )


def open_timeline(
    config: TidemarkConfig | None = None, apply_layout_filter: bool = True
) -> ActiveTimeline:
    """Open and load the active timeline of a table.

    Args:
        config: Optional runtime configuration; read from the environment when omitted.
        apply_layout_filter: Keep only each instant's latest state.

    Returns:
        Loaded active timeline.
    """
    resolved_config = config or TidemarkConfig.from_env()
    return ActiveTimeline(resolved_config, apply_layout_filter=apply_layout_filter)
