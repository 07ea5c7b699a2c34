"""Unit tests for the in-memory timeline store."""

from __future__ import annotations

import pytest

from core.errors import TidemarkAlreadyExistsError, TidemarkNotFoundError
from store.memory_store import InMemoryTimelineStore


def test_list_returns_direct_children_only() -> None:
    """Listing should not descend into nested prefixes."""
    store = InMemoryTimelineStore()
    store.create("/t/timeline/100.commit", b"", overwrite=False)
    store.create("/t/timeline/archive/99.commit", b"", overwrite=False)

    assert store.list("/t/timeline") == {"100.commit"}


def test_create_immutable_fails_when_present() -> None:
    """Write-once semantics should match the persistent backends."""
    store = InMemoryTimelineStore()
    store.create_immutable("/t/100.clean", b"a")

    with pytest.raises(TidemarkAlreadyExistsError):
        store.create_immutable("/t/100.clean", b"b")


def test_rename_and_delete_report_outcomes() -> None:
    """Rename and delete should report whether they changed anything."""
    store = InMemoryTimelineStore()
    store.create("/t/100.inflight", b"x", overwrite=False)

    moved = store.rename("/t/100.inflight", "/t/100.commit")
    moved_again = store.rename("/t/100.inflight", "/t/100.commit")
    deleted = store.delete("/t/100.commit")

    assert moved and not moved_again and deleted and not store.delete("/t/100.commit")


def test_open_missing_path_raises_not_found() -> None:
    """Reading an absent path should raise NotFound."""
    with pytest.raises(TidemarkNotFoundError):
        InMemoryTimelineStore().open("/t/missing")
