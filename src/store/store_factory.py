"""Timeline store selection."""

from __future__ import annotations

from core.config import TidemarkConfig
from store.local_store import LocalTimelineStore
from store.s3_store import S3TimelineStore, create_s3_client
from store.timeline_store import TimelineStore


def create_timeline_store(config: TidemarkConfig) -> TimelineStore:
    """Return the backend matching the configured table root."""
    if config.is_object_store:
        return S3TimelineStore(create_s3_client(config))
    return LocalTimelineStore()
