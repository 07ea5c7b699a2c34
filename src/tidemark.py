"""Public SDK surface for Tidemark.

This module provides a stable import path for timeline users.
It re-exports the active timeline, the instant model, and the error types.
"""

from __future__ import annotations

from core.config import TidemarkConfig
from core.errors import (
    TidemarkAlreadyExistsError,
    TidemarkError,
    TidemarkNotFoundError,
    TidemarkStorageError,
    TidemarkValidationError,
)
from core.types import COMPLETED, INFLIGHT, REQUESTED, CommitMetadata, Instant
from store.memory_store import InMemoryTimelineStore
from timeline.active_timeline import ActiveTimeline, open_timeline
from timeline.extensions import ACTIVE_TIMELINE_EXTENSIONS
from timeline.payload_codec import JsonPayloadCodec
from timeline.time_generator import TimeGenerator
from timeline.timeline import Timeline

__all__ = [
    "ACTIVE_TIMELINE_EXTENSIONS",
    "COMPLETED",
    "INFLIGHT",
    "REQUESTED",
    "ActiveTimeline",
    "CommitMetadata",
    "InMemoryTimelineStore",
    "Instant",
    "JsonPayloadCodec",
    "TidemarkAlreadyExistsError",
    "TidemarkConfig",
    "TidemarkError",
    "TidemarkNotFoundError",
    "TidemarkStorageError",
    "TidemarkValidationError",
    "TimeGenerator",
    "Timeline",
    "open_timeline",
]
