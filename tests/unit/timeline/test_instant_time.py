"""Unit tests for instant time formatting."""

from __future__ import annotations

from datetime import datetime

import pytest

from core.errors import TidemarkValidationError
from timeline.instant_time import format_instant_time, is_valid_instant_time, parse_instant_time


def test_format_instant_time_uses_utc_millis() -> None:
    """UTC formatting should yield 17 digits including milliseconds."""
    assert format_instant_time(1_700_000_000_123, "utc") == "20231114221320123"


def test_parse_instant_time_reads_millis() -> None:
    """Millisecond instant times should parse to the exact moment."""
    parsed = parse_instant_time("20231114221320123")

    assert parsed == datetime(2023, 11, 14, 22, 13, 20, 123000)


def test_parse_second_granularity_time_uses_last_millisecond() -> None:
    """Older 14-digit times should parse as the end of their second."""
    parsed = parse_instant_time("20231114221320")

    assert parsed.microsecond == 999000


@pytest.mark.parametrize("value", ["2023", "2023111422132012x", "20231314221320123"])
def test_parse_instant_time_rejects_malformed_values(value: str) -> None:
    """Malformed times should fail validation."""
    with pytest.raises(TidemarkValidationError):
        parse_instant_time(value)


def test_is_valid_instant_time() -> None:
    """Validity check should mirror parsing."""
    assert is_valid_instant_time("20231114221320123") and not is_valid_instant_time("now")
