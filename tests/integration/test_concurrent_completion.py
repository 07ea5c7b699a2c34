"""Integration tests for racing writers on one table."""

from __future__ import annotations

import threading
from typing import Callable

import pytest

from core.constants import COMPLETION_CLAIMS_DIR_NAME
from core.errors import TidemarkAlreadyExistsError
from core.types import REQUESTED, Instant
from store.local_store import LocalTimelineStore
from store.memory_store import InMemoryTimelineStore
from tests.timeline_builders import SteppingClock, build_timeline, timeline_files
from timeline.locks import InProcessLockProvider

_RT = "20240101000000000"


class _BarrierClock:
    """Clock that holds every racing writer until all of them have read it."""

    def __init__(self, barrier: threading.Barrier, clock: SteppingClock) -> None:
        self._barrier = barrier
        self._clock = clock

    def __call__(self) -> float:
        self._barrier.wait(timeout=5.0)
        return self._clock()


class _InterleavingStore(LocalTimelineStore):
    """Local store that runs a rival writer's step just before one chosen write."""

    def __init__(
        self, pause_before: Callable[[str], bool], rival_step: Callable[[], None]
    ) -> None:
        self._pause_before = pause_before
        self._rival_step: Callable[[], None] | None = rival_step

    def create_immutable(self, path: str, content: bytes) -> None:
        self._yield_to_rival(path)
        super().create_immutable(path, content)

    def create(self, path: str, content: bytes, overwrite: bool) -> None:
        self._yield_to_rival(path)
        super().create(path, content, overwrite)

    def _yield_to_rival(self, path: str) -> None:
        if self._rival_step is not None and self._pause_before(path):
            rival_step, self._rival_step = self._rival_step, None
            rival_step()


def _race_completions(timelines, inflight: Instant) -> list[str]:
    outcomes: list[str] = []
    barrier = threading.Barrier(len(timelines))

    def _complete(timeline) -> None:
        barrier.wait()
        try:
            timeline.save_as_complete(inflight, {"writer": id(timeline)}, should_lock=True)
            outcomes.append("won")
        except TidemarkAlreadyExistsError:
            outcomes.append("lost")

    threads = [threading.Thread(target=_complete, args=(timeline,)) for timeline in timelines]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return outcomes


def _start_commit(timeline, requested_time: str = _RT) -> Instant:
    requested = Instant(REQUESTED, "commit", requested_time)
    timeline.create_new_instant(requested)
    return timeline.transition_requested_to_inflight(requested)


def _completed_files(timeline) -> list[str]:
    return [name for name in timeline_files(timeline) if name.endswith(".commit")]


def test_concurrent_completion_has_one_winner(tmp_path) -> None:
    """Racing completions of one request should leave exactly one completed file."""
    clock = SteppingClock()
    lock_root = str(tmp_path / "table")
    writers = [
        build_timeline(
            tmp_path,
            lock_provider=InProcessLockProvider(lock_root, timeout_seconds=5.0),
            clock=clock,
        )
        for _ in range(4)
    ]
    inflight = _start_commit(writers[0])

    outcomes = _race_completions(writers, inflight)

    assert outcomes.count("won") == 1 and outcomes.count("lost") == 3
    assert len(_completed_files(writers[0])) == 1


def test_concurrent_completion_without_lock_has_one_winner(tmp_path) -> None:
    """Writers with no lock provider should still produce a single completion."""
    inflight = _start_commit(build_timeline(tmp_path))
    barrier = threading.Barrier(3)
    clock = SteppingClock()
    writers = [build_timeline(tmp_path, clock=_BarrierClock(barrier, clock)) for _ in range(3)]

    outcomes = _race_completions(writers, inflight)
    reader = build_timeline(tmp_path)

    assert outcomes.count("won") == 1 and outcomes.count("lost") == 2
    assert len(_completed_files(reader)) == 1
    assert reader.filter_completed_instants().count_instants() == 1


def test_completion_loses_when_rival_claims_first(tmp_path) -> None:
    """A writer that passed the completed-file check should still lose to a faster rival."""
    rival = build_timeline(tmp_path, clock=SteppingClock(1_700_000_100))
    inflight = _start_commit(rival)
    winners: list[Instant] = []

    def _rival_completes() -> None:
        winners.append(rival.save_as_complete(inflight, {"writer": "rival"}))

    store = _InterleavingStore(lambda path: COMPLETION_CLAIMS_DIR_NAME in path, _rival_completes)
    loser = build_timeline(tmp_path, store=store)

    with pytest.raises(TidemarkAlreadyExistsError):
        loser.save_as_complete(inflight, {"writer": "loser"})

    assert _completed_files(rival) == [f"{_RT}_{winners[0].completion_time}.commit"]
    assert rival.reload().get_instant_details(winners[0]) == b'{"writer":"rival"}'


def test_legacy_losing_completion_leaves_no_inflight_file(tmp_path) -> None:
    """The losing legacy writer should not resurrect the inflight file it rewrote."""
    rival = build_timeline(tmp_path, layout="legacy")
    inflight = _start_commit(rival)

    def _rival_completes() -> None:
        rival.save_as_complete(inflight, {"writer": "rival"})

    store = _InterleavingStore(lambda path: path.endswith(".inflight"), _rival_completes)
    loser = build_timeline(tmp_path, layout="legacy", store=store)

    with pytest.raises(TidemarkAlreadyExistsError):
        loser.save_as_complete(inflight, {"writer": "loser"})

    assert timeline_files(rival) == [f"{_RT}.commit"]


def test_legacy_concurrent_completion_has_one_winner(tmp_path) -> None:
    """Racing legacy completions should leave only the completed file."""
    clock = SteppingClock()
    lock_root = str(tmp_path / "legacy-table")
    writers = [
        build_timeline(
            tmp_path,
            layout="legacy",
            lock_provider=InProcessLockProvider(lock_root, timeout_seconds=5.0),
            clock=clock,
        )
        for _ in range(3)
    ]
    inflight = _start_commit(writers[0])

    outcomes = _race_completions(writers, inflight)

    assert outcomes.count("won") == 1 and outcomes.count("lost") == 2
    assert timeline_files(writers[0]) == [f"{_RT}.commit"]


def test_revert_releases_claim_for_recompletion(tmp_path) -> None:
    """A reverted instant should be completable again by another writer."""
    first = build_timeline(tmp_path)
    completed = first.save_as_complete(_start_commit(first), None)
    inflight = first.revert_to_inflight(completed)

    recompleted = build_timeline(tmp_path, clock=SteppingClock(1_700_000_100))
    again = recompleted.save_as_complete(inflight, {"attempt": 2})

    assert _completed_files(recompleted) == [f"{_RT}_{again.completion_time}.commit"]


def test_deleting_pending_instant_drops_orphaned_claim(tmp_path) -> None:
    """A claim with no completed file should be removed with its pending instant."""
    timeline = build_timeline(tmp_path)
    inflight = _start_commit(timeline)
    claims_dir = tmp_path / "table" / ".tidemark" / "timeline" / COMPLETION_CLAIMS_DIR_NAME
    claims_dir.mkdir()
    (claims_dir / f"{_RT}.commit").write_bytes(b"20231114221320000")

    with pytest.raises(TidemarkAlreadyExistsError):
        timeline.save_as_complete(inflight, None)
    timeline.delete_inflight(inflight)

    assert not (claims_dir / f"{_RT}.commit").exists()


def test_concurrent_completion_on_in_memory_store(tmp_path) -> None:
    """The single-winner guarantee should hold on the in-memory backend."""
    store = InMemoryTimelineStore()
    clock = SteppingClock()
    writers = [build_timeline(tmp_path, store=store, clock=clock) for _ in range(3)]
    requested = Instant(REQUESTED, "deltacommit", _RT)
    writers[0].create_new_instant(requested)
    inflight = writers[0].transition_requested_to_inflight(requested)

    outcomes = _race_completions(writers, inflight)
    reader = build_timeline(tmp_path, store=store)

    assert outcomes.count("won") == 1
    assert reader.filter_completed_instants().count_instants() == 1


def test_lock_orders_completion_times(tmp_path) -> None:
    """Completions serialized by the lock should get distinct times."""
    clock = SteppingClock()
    lock_root = str(tmp_path / "table")
    writers = [
        build_timeline(
            tmp_path,
            lock_provider=InProcessLockProvider(lock_root, timeout_seconds=5.0),
            clock=clock,
        )
        for _ in range(2)
    ]
    inflights = [
        _start_commit(writer, f"2024010100000000{index}") for index, writer in enumerate(writers)
    ]

    completion_times = {
        writer.save_as_complete(inflight, None).completion_time
        for writer, inflight in zip(writers, inflights)
    }

    assert len(completion_times) == 2
