"""Local filesystem timeline store.

Write-once creates stage content in a temporary file in the target
directory and publish it with ``os.link``, which fails atomically when the
target exists. Overwrites use ``os.replace`` so readers never observe a
partially written file.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from core.errors import TidemarkAlreadyExistsError, TidemarkNotFoundError, TidemarkStorageError
from store.timeline_store import TimelineStore


class LocalTimelineStore(TimelineStore):
    """Timeline store backed by a POSIX filesystem."""

    def exists(self, path: str) -> bool:
        return Path(path).is_file()

    def open(self, path: str) -> bytes:
        try:
            return Path(path).read_bytes()
        except FileNotFoundError as error:
            raise TidemarkNotFoundError(
                f"Timeline file not found at {path}. "
                "Reload the timeline to pick up external changes.",
                path=path,
            ) from error
        except OSError as error:
            raise TidemarkStorageError(
                f"Failed to read timeline file {path}: {error}.", operation="open", path=path
            ) from error

    def create_immutable(self, path: str, content: bytes) -> None:
        staged_path = self._stage(path, content)
        try:
            os.link(staged_path, path)
        except FileExistsError as error:
            raise TidemarkAlreadyExistsError(
                f"Timeline file {path} already exists. Another writer completed this step; "
                "reload the timeline instead of retrying.",
                path=path,
            ) from error
        except OSError as error:
            raise TidemarkStorageError(
                f"Failed to publish timeline file {path}: {error}.",
                operation="create_immutable",
                path=path,
            ) from error
        finally:
            _remove_quietly(staged_path)

    def create(self, path: str, content: bytes, overwrite: bool) -> None:
        if not overwrite and self.exists(path):
            raise TidemarkAlreadyExistsError(
                f"Timeline file {path} already exists. Pass overwrite=True to replace it.",
                path=path,
            )
        staged_path = self._stage(path, content)
        try:
            os.replace(staged_path, path)
        except OSError as error:
            _remove_quietly(staged_path)
            raise TidemarkStorageError(
                f"Failed to write timeline file {path}: {error}.", operation="create", path=path
            ) from error

    def rename(self, src: str, dst: str) -> bool:
        if not self.exists(src) or self.exists(dst):
            return False
        try:
            os.rename(src, dst)
        except FileNotFoundError:
            return False
        except OSError as error:
            raise TidemarkStorageError(
                f"Failed to rename {src} to {dst}: {error}.", operation="rename", path=src
            ) from error
        return True

    def delete(self, path: str) -> bool:
        try:
            os.unlink(path)
        except FileNotFoundError:
            return False
        except OSError as error:
            raise TidemarkStorageError(
                f"Failed to delete timeline file {path}: {error}.", operation="delete", path=path
            ) from error
        return True

    def list(self, directory: str) -> set[str]:
        root = Path(directory)
        if not root.is_dir():
            return set()
        try:
            return {entry.name for entry in root.iterdir() if entry.is_file()}
        except OSError as error:
            raise TidemarkStorageError(
                f"Failed to list timeline directory {directory}: {error}.",
                operation="list",
                path=directory,
            ) from error

    def make_dirs(self, directory: str) -> None:
        try:
            Path(directory).mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise TidemarkStorageError(
                f"Failed to create directory {directory}: {error}.",
                operation="make_dirs",
                path=directory,
            ) from error

    def _stage(self, path: str, content: bytes) -> str:
        """Write content to a hidden temporary file beside path."""
        target = Path(path)
        self.make_dirs(str(target.parent))
        try:
            fd, staged_path = tempfile.mkstemp(
                dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "wb") as handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
        except OSError as error:
            raise TidemarkStorageError(
                f"Failed to stage timeline file {path}: {error}.", operation="create", path=path
            ) from error
        return staged_path


def _remove_quietly(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
