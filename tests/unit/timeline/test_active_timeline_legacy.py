"""Unit tests for the active timeline under the legacy rename layout."""

from __future__ import annotations

import json

import pytest

from core.errors import TidemarkAlreadyExistsError, TidemarkNotFoundError
from core.types import COMPLETED, INFLIGHT, REQUESTED, Instant
from tests.timeline_builders import build_timeline, timeline_files

_RT = "20240101000000000"


def _start_commit(timeline, metadata: object | None = None) -> Instant:
    requested = Instant(REQUESTED, "commit", _RT)
    timeline.create_new_instant(requested)
    return timeline.transition_requested_to_inflight(requested, metadata)


def test_transition_renames_requested_file(tmp_path) -> None:
    """Moving to inflight should replace the requested file."""
    timeline = build_timeline(tmp_path, layout="legacy")

    _start_commit(timeline)

    assert timeline_files(timeline) == [f"{_RT}.inflight"]


def test_transition_rewrites_content_before_rename(tmp_path) -> None:
    """Metadata passed to the transition should land in the inflight file."""
    timeline = build_timeline(tmp_path, layout="legacy")

    inflight = _start_commit(timeline, {"stage": "inflight"})

    assert json.loads(timeline.get_instant_details(inflight)) == {"stage": "inflight"}


def test_completion_renames_without_completion_time(tmp_path) -> None:
    """Legacy completed files should be named by requested time only."""
    timeline = build_timeline(tmp_path, layout="legacy")

    completed = timeline.save_as_complete(_start_commit(timeline), {"k": "v"})

    assert timeline_files(timeline) == [f"{_RT}.commit"] and completed.completion_time is not None


def test_completed_payload_reads_back(tmp_path) -> None:
    """The completion payload should replace the inflight content."""
    timeline = build_timeline(tmp_path, layout="legacy")
    timeline.save_as_complete(_start_commit(timeline, {"stage": "inflight"}), {"k": "v"})

    details = timeline.get_instant_details(Instant(COMPLETED, "commit", _RT))

    assert details == b'{"k":"v"}'


def test_completion_without_metadata_keeps_inflight_content(tmp_path) -> None:
    """Completing without metadata should carry the inflight payload over."""
    timeline = build_timeline(tmp_path, layout="legacy")
    timeline.save_as_complete(_start_commit(timeline, {"stage": "inflight"}), None)

    details = timeline.get_instant_details(Instant(COMPLETED, "commit", _RT))

    assert json.loads(details) == {"stage": "inflight"}


def test_second_completion_loses_to_completed_file(tmp_path) -> None:
    """Completing an already renamed instant should lose with AlreadyExists."""
    timeline = build_timeline(tmp_path, layout="legacy")
    inflight = _start_commit(timeline)
    timeline.save_as_complete(inflight, None)

    with pytest.raises(TidemarkAlreadyExistsError):
        timeline.save_as_complete(inflight, None)

    assert timeline_files(timeline) == [f"{_RT}.commit"]


def test_completion_of_missing_inflight_raises_not_found(tmp_path) -> None:
    """Completing an instant with no files on storage should report NotFound."""
    timeline = build_timeline(tmp_path, layout="legacy")

    with pytest.raises(TidemarkNotFoundError):
        timeline.save_as_complete(Instant(INFLIGHT, "commit", _RT), None)

    assert timeline_files(timeline) == []


def test_create_new_instant_twice_fails(tmp_path) -> None:
    """Legacy creates should also refuse existing markers."""
    timeline = build_timeline(tmp_path, layout="legacy")
    timeline.create_new_instant(Instant(REQUESTED, "commit", _RT))

    with pytest.raises(TidemarkAlreadyExistsError):
        timeline.create_new_instant(Instant(REQUESTED, "commit", _RT))


def test_transition_refuses_existing_target(tmp_path) -> None:
    """A rename onto an existing stage file should lose with AlreadyExists."""
    timeline = build_timeline(tmp_path, layout="legacy")
    timeline.create_new_instant(Instant(INFLIGHT, "commit", _RT))
    timeline.create_new_instant(Instant(REQUESTED, "commit", _RT))

    with pytest.raises(TidemarkAlreadyExistsError):
        timeline.transition_requested_to_inflight(Instant(REQUESTED, "commit", _RT))

    assert timeline_files(timeline) == [f"{_RT}.commit.requested", f"{_RT}.inflight"]


def test_revert_complete_renames_back_to_inflight(tmp_path) -> None:
    """Reverting should rename the completed file back, keeping its payload."""
    timeline = build_timeline(tmp_path, layout="legacy")
    inflight = _start_commit(timeline)
    completed = timeline.save_as_complete(inflight, {"k": "v"})

    timeline.revert_complete_to_inflight(completed, inflight)

    assert timeline.reload().instants == (inflight,) and (
        timeline.get_instant_details(inflight) == b'{"k":"v"}'
    )


def test_revert_inflight_to_requested_renames_back(tmp_path) -> None:
    """Reverting to requested should rename the inflight file back."""
    timeline = build_timeline(tmp_path, layout="legacy")
    inflight = _start_commit(timeline)

    timeline.revert_instant_from_inflight_to_requested(inflight)

    assert timeline_files(timeline) == [f"{_RT}.commit.requested"]


def test_create_complete_instant_writes_single_file(tmp_path) -> None:
    """Single-shot completions should write one completed file."""
    timeline = build_timeline(tmp_path, layout="legacy")

    completed = timeline.create_complete_instant(Instant(COMPLETED, "savepoint", _RT))

    assert timeline_files(timeline) == [f"{_RT}.savepoint"] and completed.is_completed


def test_reload_lists_one_instant_per_file(tmp_path) -> None:
    """Legacy reload should list instants without a layout filter."""
    timeline = build_timeline(tmp_path, layout="legacy")
    timeline.save_as_complete(_start_commit(timeline), None)
    timeline.create_new_instant(Instant(REQUESTED, "clean", "20240101000000001"))

    instants = timeline.reload().instants

    assert [(instant.action, instant.state) for instant in instants] == [
        ("commit", COMPLETED),
        ("clean", REQUESTED),
    ]
