"""Completion time generation.

Completion times are read from the wall clock. When locking is requested
the clock read, the clock-skew wait, and the caller's write all happen
while the timeline lock is held, so completions serialized through the
lock pick distinct times in commit order.
"""

from __future__ import annotations

import time
from typing import Callable, TypeVar

from core.config import TidemarkConfig
from core.logging_config import get_logger
from timeline.instant_time import format_instant_time
from timeline.locks import LockProvider, NoopLockProvider, build_lock_provider

_LOGGER = get_logger(__name__)
T = TypeVar("T")


class TimeGenerator:
    """Clock reader that optionally serializes readers through a lock."""

    def __init__(
        self,
        lock_provider: LockProvider | None = None,
        max_clock_skew_ms: int = 0,
        timezone_name: str = "utc",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._lock_provider = lock_provider or NoopLockProvider()
        self._max_clock_skew_ms = max_clock_skew_ms
        self._timezone_name = timezone_name
        self._clock = clock

    @classmethod
    def from_config(cls, config: TidemarkConfig) -> "TimeGenerator":
        return cls(
            lock_provider=build_lock_provider(config),
            max_clock_skew_ms=config.max_clock_skew_ms,
            timezone_name=config.timeline_timezone,
        )

    def consume_time(self, skip_locking: bool, callback: Callable[[int], T]) -> T:
        """Read the clock and run callback with the reading.

        Args:
            skip_locking: Run without the lock (single-writer setups).
            callback: Receives epoch milliseconds; runs while the lock is held.

        Returns:
            The callback's return value.

        Raises:
            TidemarkLockError: If the lock cannot be acquired.
        """
        if skip_locking:
            return callback(self._read_millis())
        with self._lock_provider.hold():
            current_millis = self._read_millis()
            if self._max_clock_skew_ms > 0:
                time.sleep(self._max_clock_skew_ms / 1000.0)
            return callback(current_millis)

    def generate_time(self, skip_locking: bool) -> str:
        """Return a freshly minted instant time."""
        return self.consume_time(skip_locking, self.format_millis)

    def format_millis(self, epoch_millis: int) -> str:
        return format_instant_time(epoch_millis, self._timezone_name)

    def _read_millis(self) -> int:
        return int(self._clock() * 1000)
