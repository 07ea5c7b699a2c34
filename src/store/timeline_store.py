"""Timeline storage contract.

This module defines the minimal set of operations the timeline needs from
a storage backend. Each operation reports failures with a distinct error
type so callers can tell a lost race from a missing file or an I/O fault.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class TimelineStore(ABC):
    """Storage backend used by the active timeline.

    Paths are ``/``-joined strings; backends map them onto their own
    addressing (local paths, S3 keys, dictionary keys).
    """

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Return whether a file exists at path."""

    @abstractmethod
    def open(self, path: str) -> bytes:
        """Read a whole file.

        Raises:
            TidemarkNotFoundError: If the file is absent.
            TidemarkStorageError: If the read fails.
        """

    @abstractmethod
    def create_immutable(self, path: str, content: bytes) -> None:
        """Write a file exactly once.

        Of several concurrent callers targeting the same path, exactly one
        succeeds; readers never observe partial content.

        Raises:
            TidemarkAlreadyExistsError: If the path is already present.
            TidemarkStorageError: If the write fails.
        """

    @abstractmethod
    def create(self, path: str, content: bytes, overwrite: bool) -> None:
        """Write a file without write-once guarantees.

        Raises:
            TidemarkAlreadyExistsError: If present and overwrite is False.
            TidemarkStorageError: If the write fails.
        """

    @abstractmethod
    def rename(self, src: str, dst: str) -> bool:
        """Move src to dst; False when src is missing or dst exists."""

    @abstractmethod
    def delete(self, path: str) -> bool:
        """Delete a file; False when it was absent."""

    @abstractmethod
    def list(self, directory: str) -> set[str]:
        """Return file names directly under directory; empty when it is absent."""

    def make_dirs(self, directory: str) -> None:
        """Ensure a directory exists; a no-op for flat namespaces."""
        return None


def join_path(directory: str, file_name: str) -> str:
    """Join a directory and a file name with a single separator."""
    return f"{directory.rstrip('/')}/{file_name}"
