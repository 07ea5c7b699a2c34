"""Runtime configuration model for Tidemark.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import os

from core.constants import (
    DEFAULT_LAYOUT,
    DEFAULT_LOCK_TIMEOUT_SECONDS,
    DEFAULT_MAX_CLOCK_SKEW_MS,
    DEFAULT_TABLE_ROOT,
    LAYOUT_LEGACY,
    LOCK_PROVIDER_NONE,
    METADATA_DIR_NAME,
    S3_URI_SCHEME,
    SUPPORTED_LAYOUTS,
    SUPPORTED_LOCK_PROVIDERS,
    SUPPORTED_TIMEZONES,
    TIMELINE_DIR_NAME,
    TIMEZONE_UTC,
)
from core.errors import TidemarkConfigError


@dataclass(frozen=True)
class TidemarkConfig:
    """Validated runtime configuration.

    Attributes:
        table_root: Table base path, local directory or ``s3://bucket/prefix``.
        timeline_layout: On-disk protocol, ``modern`` or ``legacy``.
        timeline_timezone: Timezone used to format instant times.
        lock_provider: Lock used to serialize completion-time generation.
        lock_timeout_seconds: Maximum wait when acquiring the lock.
        max_clock_skew_ms: Wait applied while holding the lock after reading the clock.
        s3_region: Optional default AWS region for S3 operations.
        s3_profile: Optional AWS profile for boto3 session initialization.
    """

    table_root: str
    timeline_layout: str = DEFAULT_LAYOUT
    timeline_timezone: str = TIMEZONE_UTC
    lock_provider: str = LOCK_PROVIDER_NONE
    lock_timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS
    max_clock_skew_ms: int = DEFAULT_MAX_CLOCK_SKEW_MS
    s3_region: str | None = None
    s3_profile: str | None = None

    @classmethod
    def from_env(cls) -> "TidemarkConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            TidemarkConfigError: If environment values are invalid.
        """
        table_root = os.getenv("TIDEMARK_TABLE_ROOT", DEFAULT_TABLE_ROOT)
        layout = _parse_choice(
            "TIDEMARK_TIMELINE_LAYOUT",
            os.getenv("TIDEMARK_TIMELINE_LAYOUT", DEFAULT_LAYOUT),
            SUPPORTED_LAYOUTS,
        )
        timezone_name = _parse_choice(
            "TIDEMARK_TIMELINE_TIMEZONE",
            os.getenv("TIDEMARK_TIMELINE_TIMEZONE", TIMEZONE_UTC),
            SUPPORTED_TIMEZONES,
        )
        lock_provider = _parse_choice(
            "TIDEMARK_LOCK_PROVIDER",
            os.getenv("TIDEMARK_LOCK_PROVIDER", LOCK_PROVIDER_NONE),
            SUPPORTED_LOCK_PROVIDERS,
        )
        lock_timeout = _parse_lock_timeout(
            os.getenv("TIDEMARK_LOCK_TIMEOUT_SECONDS", str(DEFAULT_LOCK_TIMEOUT_SECONDS))
        )
        clock_skew = _parse_clock_skew(
            os.getenv("TIDEMARK_MAX_CLOCK_SKEW_MS", str(DEFAULT_MAX_CLOCK_SKEW_MS))
        )
        return cls(
            table_root=normalize_table_root(table_root),
            timeline_layout=layout,
            timeline_timezone=timezone_name,
            lock_provider=lock_provider,
            lock_timeout_seconds=lock_timeout,
            max_clock_skew_ms=clock_skew,
            s3_region=os.getenv("TIDEMARK_S3_REGION"),
            s3_profile=os.getenv("TIDEMARK_S3_PROFILE"),
        )

    @property
    def is_legacy_layout(self) -> bool:
        """Return whether transitions use the rename-based protocol."""
        return self.timeline_layout == LAYOUT_LEGACY

    @property
    def is_object_store(self) -> bool:
        """Return whether the table lives on S3."""
        return self.table_root.startswith(S3_URI_SCHEME)

    @property
    def metadata_path(self) -> str:
        """Return the table metadata directory path."""
        return f"{self.table_root.rstrip('/')}/{METADATA_DIR_NAME}"

    @property
    def timeline_path(self) -> str:
        """Return the directory holding one file per instant stage."""
        return f"{self.metadata_path}/{TIMELINE_DIR_NAME}"


def normalize_table_root(raw_value: str) -> str:
    """Resolve local table roots to absolute paths; keep S3 URIs as-is.

    Args:
        raw_value: Raw table root from environment or CLI.

    Returns:
        Normalized table root string.

    Raises:
        TidemarkConfigError: If the value is empty.
    """
    stripped = raw_value.strip()
    if not stripped:
        raise TidemarkConfigError(
            "Invalid TIDEMARK_TABLE_ROOT value: expected a path or s3:// URI, got ''. "
            "Set TIDEMARK_TABLE_ROOT to the table base path."
        )
    if stripped.startswith(S3_URI_SCHEME):
        return stripped.rstrip("/")
    return os.path.abspath(os.path.expanduser(stripped))


def _parse_choice(name: str, raw_value: str, choices: tuple[str, ...]) -> str:
    """Parse an enumerated environment value.

    Args:
        name: Environment variable name.
        raw_value: Raw string from environment.
        choices: Accepted lowercase values.

    Returns:
        Normalized value.

    Raises:
        TidemarkConfigError: If value is not one of the choices.
    """
    value = raw_value.strip().lower()
    if value not in choices:
        raise TidemarkConfigError(
            f"Invalid {name} value: expected one of {', '.join(choices)}, got '{raw_value}'. "
            f"Set {name} to a supported value."
        )
    return value


def _parse_lock_timeout(raw_value: str) -> float:
    """Parse the lock timeout environment value.

    Raises:
        TidemarkConfigError: If value is not a positive number.
    """
    try:
        timeout = float(raw_value)
    except ValueError as error:
        raise TidemarkConfigError(
            "Invalid TIDEMARK_LOCK_TIMEOUT_SECONDS value: "
            f"expected number, got '{raw_value}'. "
            "Set TIDEMARK_LOCK_TIMEOUT_SECONDS to a positive number of seconds."
        ) from error
    if timeout <= 0:
        raise TidemarkConfigError(
            "Invalid TIDEMARK_LOCK_TIMEOUT_SECONDS value: "
            f"expected positive number, got '{raw_value}'."
        )
    return timeout


def _parse_clock_skew(raw_value: str) -> int:
    """Parse the maximum expected clock skew in milliseconds.

    Raises:
        TidemarkConfigError: If value is not a non-negative integer.
    """
    try:
        skew = int(raw_value)
    except ValueError as error:
        raise TidemarkConfigError(
            "Invalid TIDEMARK_MAX_CLOCK_SKEW_MS value: "
            f"expected integer, got '{raw_value}'. "
            "Set TIDEMARK_MAX_CLOCK_SKEW_MS to a numeric value."
        ) from error
    if skew < 0:
        raise TidemarkConfigError(
            f"Invalid TIDEMARK_MAX_CLOCK_SKEW_MS value: expected >= 0, got '{raw_value}'."
        )
    return skew
