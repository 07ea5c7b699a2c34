"""Tidemark exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Timeline callers branch on the concrete type to decide whether to
re-read state, surface a defect, or retry an I/O failure.
"""

from __future__ import annotations


class TidemarkError(Exception):
    """Base exception for all Tidemark failures."""


class TidemarkConfigError(TidemarkError):
    """Raised for invalid runtime configuration."""


class TidemarkValidationError(TidemarkError):
    """Raised when an instant does not match an operation's precondition."""


class TidemarkAlreadyExistsError(TidemarkError):
    """Raised when a write-once create finds its target already present."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class TidemarkNotFoundError(TidemarkError):
    """Raised when an expected timeline file is absent."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class TidemarkStorageError(TidemarkError):
    """Raised for backend transport failures.

    Attributes:
        operation: Storage operation that failed, e.g. ``rename``.
        path: Path the operation targeted.
    """

    def __init__(self, message: str, operation: str, path: str) -> None:
        super().__init__(message)
        self.operation = operation
        self.path = path


class TidemarkLockError(TidemarkError):
    """Raised when the timeline lock cannot be acquired."""


class TidemarkCodecError(TidemarkError):
    """Raised when an instant payload cannot be encoded or decoded."""


class TidemarkDependencyError(TidemarkError):
    """Raised when an optional runtime dependency is missing."""
