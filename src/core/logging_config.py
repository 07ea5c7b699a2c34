"""Structured logging configuration.

This module initializes loggers with a stable structured format.
Every timeline event is rendered as one JSON line on stderr through
structlog, keeping stdout free for command output.
"""

from __future__ import annotations

import sys
from typing import Any

import structlog

_CONFIGURED = False


def get_logger(name: str) -> Any:
    """Return a module logger instance.

    Args:
        name: Logger name, usually __name__.

    Returns:
        A structlog logger with structured output.
    """
    _configure_once()
    return structlog.get_logger(name)


def _configure_once() -> None:
    """Apply the shared processor chain on first use."""
    global _CONFIGURED
    if _CONFIGURED:
        return
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=_stderr_logger_factory,
        cache_logger_on_first_use=False,
    )
    _CONFIGURED = True


def _stderr_logger_factory(*_args: Any) -> structlog.PrintLogger:
    """Return a logger writing to the current stderr stream."""
    return structlog.PrintLogger(sys.stderr)
