"""Timeline lock providers.

The timeline never coordinates writers itself; it only needs an external
mutual-exclusion primitive while minting completion times. This module
defines that contract and the providers shipped with Tidemark.
"""

from __future__ import annotations

import fcntl
import os
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, TextIO

from core.config import TidemarkConfig
from core.constants import (
    LOCK_POLL_INTERVAL_SECONDS,
    LOCK_PROVIDER_FILE,
    LOCK_PROVIDER_IN_PROCESS,
    TIMELINE_LOCK_FILE_NAME,
)
from core.errors import TidemarkConfigError, TidemarkLockError
from core.logging_config import get_logger

_LOGGER = get_logger(__name__)


class LockProvider(ABC):
    """Exclusive lock guarding completion-time generation."""

    @abstractmethod
    def acquire(self) -> None:
        """Block until the lock is held.

        Raises:
            TidemarkLockError: If the lock cannot be acquired in time.
        """

    @abstractmethod
    def release(self) -> None:
        """Release a held lock."""

    @contextmanager
    def hold(self) -> Iterator[None]:
        """Hold the lock for the duration of the context."""
        self.acquire()
        try:
            yield
        finally:
            self.release()


class NoopLockProvider(LockProvider):
    """Lock for single-writer deployments.

    Concurrent completions still produce one winner through the completion
    claim, but completion times are not ordered across writers.
    """

    def acquire(self) -> None:
        return None

    def release(self) -> None:
        return None


class InProcessLockProvider(LockProvider):
    """Lock shared by every provider for the same table within one process."""

    _registry_guard = threading.Lock()
    _locks: dict[str, threading.Lock] = {}

    def __init__(self, table_root: str, timeout_seconds: float) -> None:
        self._table_root = table_root
        self._timeout_seconds = timeout_seconds
        with InProcessLockProvider._registry_guard:
            self._lock = InProcessLockProvider._locks.setdefault(table_root, threading.Lock())

    def acquire(self) -> None:
        if not self._lock.acquire(timeout=self._timeout_seconds):
            raise TidemarkLockError(
                f"Timed out after {self._timeout_seconds}s waiting for the in-process lock "
                f"on {self._table_root}. Another writer in this process holds it."
            )

    def release(self) -> None:
        self._lock.release()


class FileSystemLockProvider(LockProvider):
    """Cross-process lock using ``fcntl.flock`` on a local lock file."""

    def __init__(self, lock_path: str, timeout_seconds: float) -> None:
        self._lock_path = lock_path
        self._timeout_seconds = timeout_seconds
        self._handle: TextIO | None = None

    def acquire(self) -> None:
        os.makedirs(os.path.dirname(self._lock_path), exist_ok=True)
        handle = open(self._lock_path, "a+", encoding="utf-8")
        deadline = time.monotonic() + self._timeout_seconds
        try:
            while True:
                try:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if time.monotonic() >= deadline:
                        raise TidemarkLockError(
                            f"Timed out after {self._timeout_seconds}s waiting for lock file "
                            f"{self._lock_path}. Check for a stuck writer holding the lock."
                        )
                    time.sleep(LOCK_POLL_INTERVAL_SECONDS)
        except BaseException:
            handle.close()
            raise
        self._handle = handle
        _LOGGER.debug("timeline_lock_acquired", lock_path=self._lock_path)

    def release(self) -> None:
        if self._handle is None:
            return
        try:
            fcntl.flock(self._handle.fileno(), fcntl.LOCK_UN)
        finally:
            self._handle.close()
            self._handle = None
        _LOGGER.debug("timeline_lock_released", lock_path=self._lock_path)


def build_lock_provider(config: TidemarkConfig) -> LockProvider:
    """Create the lock provider selected by config.

    Raises:
        TidemarkConfigError: If a file lock is requested for an object-store table.
    """
    if config.lock_provider == LOCK_PROVIDER_IN_PROCESS:
        return InProcessLockProvider(config.table_root, config.lock_timeout_seconds)
    if config.lock_provider == LOCK_PROVIDER_FILE:
        if config.is_object_store:
            raise TidemarkConfigError(
                f"TIDEMARK_LOCK_PROVIDER=file cannot lock object-store table {config.table_root}. "
                "Use an external lock service or in_process for a single process."
            )
        lock_path = f"{config.metadata_path}/{TIMELINE_LOCK_FILE_NAME}"
        return FileSystemLockProvider(lock_path, config.lock_timeout_seconds)
    return NoopLockProvider()
