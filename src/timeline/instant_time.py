"""Instant time formatting and parsing.

Instant times are ``yyyyMMddHHmmssSSS`` strings so lexical order matches
chronological order. Second-granularity times from older tables parse as
the last millisecond of their second.
"""

from __future__ import annotations

from datetime import datetime, timezone

from core.constants import (
    DEFAULT_MILLIS_SUFFIX,
    INSTANT_TIME_FORMAT,
    MILLIS_INSTANT_TIME_LENGTH,
    SECS_INSTANT_TIME_LENGTH,
    TIMEZONE_LOCAL,
)
from core.errors import TidemarkValidationError


def format_instant_time(epoch_millis: int, timezone_name: str) -> str:
    """Format epoch milliseconds as an instant time.

    Args:
        epoch_millis: Clock reading in milliseconds since the epoch.
        timezone_name: ``utc`` or ``local``.

    Returns:
        17-digit instant time.
    """
    seconds, millis = divmod(epoch_millis, 1000)
    if timezone_name == TIMEZONE_LOCAL:
        moment = datetime.fromtimestamp(seconds)
    else:
        moment = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return f"{moment.strftime(INSTANT_TIME_FORMAT)}{millis:03d}"


def parse_instant_time(instant_time: str) -> datetime:
    """Parse an instant time into a naive datetime.

    Raises:
        TidemarkValidationError: If the value is not a 14 or 17 digit time.
    """
    if not instant_time.isdigit() or len(instant_time) not in (
        SECS_INSTANT_TIME_LENGTH,
        MILLIS_INSTANT_TIME_LENGTH,
    ):
        raise TidemarkValidationError(
            f"Invalid instant time '{instant_time}': expected yyyyMMddHHmmss[SSS] digits."
        )
    if len(instant_time) == SECS_INSTANT_TIME_LENGTH:
        instant_time = instant_time + DEFAULT_MILLIS_SUFFIX
    try:
        base = datetime.strptime(instant_time[:SECS_INSTANT_TIME_LENGTH], INSTANT_TIME_FORMAT)
    except ValueError as error:
        raise TidemarkValidationError(
            f"Invalid instant time '{instant_time}': {error}."
        ) from error
    return base.replace(microsecond=int(instant_time[SECS_INSTANT_TIME_LENGTH:]) * 1000)


def is_valid_instant_time(instant_time: str) -> bool:
    try:
        parse_instant_time(instant_time)
    except TidemarkValidationError:
        return False
    return True
