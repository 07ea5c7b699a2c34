"""Unit tests for core config parsing."""

from __future__ import annotations

import os

import pytest

from core.config import TidemarkConfig, normalize_table_root
from core.errors import TidemarkConfigError


def test_from_env_reads_table_root(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should resolve the table root from environment."""
    monkeypatch.setenv("TIDEMARK_TABLE_ROOT", "./.tmp-table")

    config = TidemarkConfig.from_env()

    assert os.path.isabs(config.table_root) and config.table_root.endswith(".tmp-table")


def test_from_env_defaults_to_modern_layout(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should default to the immutable-create layout."""
    monkeypatch.delenv("TIDEMARK_TIMELINE_LAYOUT", raising=False)

    config = TidemarkConfig.from_env()

    assert config.timeline_layout == "modern" and not config.is_legacy_layout


def test_from_env_raises_for_unknown_layout(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should reject layouts it cannot operate."""
    monkeypatch.setenv("TIDEMARK_TIMELINE_LAYOUT", "v3")

    with pytest.raises(TidemarkConfigError):
        TidemarkConfig.from_env()


def test_from_env_raises_for_non_numeric_lock_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should fail for a lock timeout that is not a number."""
    monkeypatch.setenv("TIDEMARK_LOCK_TIMEOUT_SECONDS", "soon")

    with pytest.raises(TidemarkConfigError):
        TidemarkConfig.from_env()

    assert os.getenv("TIDEMARK_LOCK_TIMEOUT_SECONDS") == "soon"


def test_from_env_raises_for_negative_clock_skew(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should reject a negative clock-skew wait."""
    monkeypatch.setenv("TIDEMARK_MAX_CLOCK_SKEW_MS", "-5")

    with pytest.raises(TidemarkConfigError):
        TidemarkConfig.from_env()


def test_s3_table_root_is_object_store(monkeypatch: pytest.MonkeyPatch) -> None:
    """S3 URIs should be kept verbatim and flagged as object storage."""
    monkeypatch.setenv("TIDEMARK_TABLE_ROOT", "s3://bucket/tables/orders/")

    config = TidemarkConfig.from_env()

    assert config.is_object_store and config.table_root == "s3://bucket/tables/orders"


def test_timeline_path_is_under_metadata_dir() -> None:
    """Timeline files should live under the table's metadata directory."""
    config = TidemarkConfig(table_root="/data/orders")

    assert config.timeline_path == "/data/orders/.tidemark/timeline"


def test_normalize_table_root_rejects_blank_value() -> None:
    """An empty table root should be a config error."""
    with pytest.raises(TidemarkConfigError):
        normalize_table_root("   ")
