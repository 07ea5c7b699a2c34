"""Core constants used across Tidemark modules.

This module centralizes directory names, defaults, and timeline literals.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

DEFAULT_TABLE_ROOT = "."
METADATA_DIR_NAME = ".tidemark"
TIMELINE_DIR_NAME = "timeline"
TIMELINE_LOCK_FILE_NAME = "timeline.lock"
COMPLETION_CLAIMS_DIR_NAME = ".claims"
S3_URI_SCHEME = "s3://"

LAYOUT_LEGACY = "legacy"
LAYOUT_MODERN = "modern"
SUPPORTED_LAYOUTS = (LAYOUT_LEGACY, LAYOUT_MODERN)
DEFAULT_LAYOUT = LAYOUT_MODERN

TIMEZONE_UTC = "utc"
TIMEZONE_LOCAL = "local"
SUPPORTED_TIMEZONES = (TIMEZONE_UTC, TIMEZONE_LOCAL)

LOCK_PROVIDER_NONE = "none"
LOCK_PROVIDER_IN_PROCESS = "in_process"
LOCK_PROVIDER_FILE = "file"
SUPPORTED_LOCK_PROVIDERS = (LOCK_PROVIDER_NONE, LOCK_PROVIDER_IN_PROCESS, LOCK_PROVIDER_FILE)
DEFAULT_LOCK_TIMEOUT_SECONDS = 60.0
DEFAULT_MAX_CLOCK_SKEW_MS = 0
LOCK_POLL_INTERVAL_SECONDS = 0.05

# Instant times are yyyyMMddHHmmssSSS; older tables use second granularity.
INSTANT_TIME_FORMAT = "%Y%m%d%H%M%S"
MILLIS_INSTANT_TIME_LENGTH = 17
SECS_INSTANT_TIME_LENGTH = 14
DEFAULT_MILLIS_SUFFIX = "999"

COMPLETION_TIME_SEPARATOR = "_"
SCHEMA_METADATA_KEY = "schema"
