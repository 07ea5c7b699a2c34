"""In-memory timeline store.

Thread-safe dictionary-backed store with the same semantics as the
persistent backends. Used for dry runs and for simulating concurrent
writers in tests.
"""

from __future__ import annotations

import threading

from core.errors import TidemarkAlreadyExistsError, TidemarkNotFoundError
from store.timeline_store import TimelineStore


class InMemoryTimelineStore(TimelineStore):
    """Timeline store holding files in a dictionary keyed by path."""

    def __init__(self) -> None:
        self._files: dict[str, bytes] = {}
        self._guard = threading.Lock()

    def exists(self, path: str) -> bool:
        with self._guard:
            return path in self._files

    def open(self, path: str) -> bytes:
        with self._guard:
            if path not in self._files:
                raise TidemarkNotFoundError(f"Timeline file not found at {path}.", path=path)
            return self._files[path]

    def create_immutable(self, path: str, content: bytes) -> None:
        with self._guard:
            if path in self._files:
                raise TidemarkAlreadyExistsError(
                    f"Timeline file {path} already exists.", path=path
                )
            self._files[path] = bytes(content)

    def create(self, path: str, content: bytes, overwrite: bool) -> None:
        with self._guard:
            if not overwrite and path in self._files:
                raise TidemarkAlreadyExistsError(
                    f"Timeline file {path} already exists.", path=path
                )
            self._files[path] = bytes(content)

    def rename(self, src: str, dst: str) -> bool:
        with self._guard:
            if src not in self._files or dst in self._files:
                return False
            self._files[dst] = self._files.pop(src)
            return True

    def delete(self, path: str) -> bool:
        with self._guard:
            return self._files.pop(path, None) is not None

    def list(self, directory: str) -> set[str]:
        prefix = directory.rstrip("/") + "/"
        with self._guard:
            return {
                path[len(prefix):]
                for path in self._files
                if path.startswith(prefix) and "/" not in path[len(prefix):]
            }
