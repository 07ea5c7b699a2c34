"""Shared builders for timeline tests."""

from __future__ import annotations

import threading
from dataclasses import replace
from pathlib import Path
from typing import Callable

from core.config import TidemarkConfig
from store.timeline_store import TimelineStore
from timeline.active_timeline import ActiveTimeline
from timeline.locks import LockProvider
from timeline.time_generator import TimeGenerator

# 2023-11-14T22:13:20Z
BASE_EPOCH_SECONDS = 1_700_000_000


class SteppingClock:
    """Clock advancing one whole second per reading; safe to share across threads."""

    def __init__(self, start_seconds: int = BASE_EPOCH_SECONDS) -> None:
        self._next = start_seconds
        self._guard = threading.Lock()

    def __call__(self) -> float:
        with self._guard:
            current = self._next
            self._next += 1
        return float(current)


def build_config(tmp_path: Path, layout: str = "modern") -> TidemarkConfig:
    """Return env-derived config pointed at a table under tmp_path."""
    return replace(
        TidemarkConfig.from_env(),
        table_root=str(tmp_path / "table"),
        timeline_layout=layout,
    )


def build_timeline(
    tmp_path: Path,
    layout: str = "modern",
    store: TimelineStore | None = None,
    lock_provider: LockProvider | None = None,
    clock: Callable[[], float] | None = None,
    apply_layout_filter: bool = True,
) -> ActiveTimeline:
    """Open a timeline with a deterministic clock.

    Args:
        tmp_path: Per-test temporary directory.
        layout: ``modern`` or ``legacy``.
        store: Optional backend; the local filesystem when omitted.
        lock_provider: Optional lock for completion-time generation.
        clock: Optional clock shared between timelines.
        apply_layout_filter: Forwarded to the timeline.

    Returns:
        Loaded active timeline.
    """
    generator = TimeGenerator(lock_provider=lock_provider, clock=clock or SteppingClock())
    return ActiveTimeline(
        build_config(tmp_path, layout),
        store=store,
        time_generator=generator,
        apply_layout_filter=apply_layout_filter,
    )


def timeline_files(timeline: ActiveTimeline) -> list[str]:
    """Return the sorted file names currently in a local timeline directory."""
    directory = Path(timeline.timeline_path)
    if not directory.is_dir():
        return []
    return sorted(entry.name for entry in directory.iterdir() if entry.is_file())
