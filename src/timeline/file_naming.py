"""Instant file naming.

This module maps instants to timeline file names and back. Names have the
form ``<requestedTime>[_<completionTime>]<extension>``; only the modern
layout embeds the completion time, and only for completed instants.
"""

from __future__ import annotations

import re

from core.constants import COMPLETION_TIME_SEPARATOR, LAYOUT_LEGACY
from core.errors import TidemarkValidationError
from core.types import COMPLETED, Instant
from timeline.extensions import ACTIVE_TIMELINE_EXTENSIONS, ExtensionRegistry

_TIME_SEGMENT_PATTERN = re.compile(r"^(?P<requested>\d+)(?:_(?P<completion>\d+))?$")


class InstantFileNaming:
    """Bidirectional instant <-> file name mapping for one layout."""

    def __init__(self, registry: ExtensionRegistry, embed_completion_time: bool) -> None:
        self._registry = registry
        self._embed_completion_time = embed_completion_time

    @property
    def registry(self) -> ExtensionRegistry:
        return self._registry

    @property
    def embeds_completion_time(self) -> bool:
        return self._embed_completion_time

    def format(self, instant: Instant) -> str:
        """Return the file name for an instant.

        Args:
            instant: Instant to name.

        Returns:
            Timeline file name.

        Raises:
            TidemarkValidationError: If the pair is unregistered, or a completed
                instant lacks the completion time this layout embeds.
        """
        extension = self._registry.extension_for(instant.action, instant.state)
        if instant.state == COMPLETED and self._embed_completion_time:
            if not instant.completion_time:
                raise TidemarkValidationError(
                    f"Completed instant {instant} has no completion time; "
                    "resolve it from the timeline before building its file name."
                )
            return (
                f"{instant.requested_time}{COMPLETION_TIME_SEPARATOR}"
                f"{instant.completion_time}{extension}"
            )
        return f"{instant.requested_time}{extension}"

    def parse(self, file_name: str) -> Instant | None:
        """Parse a timeline file name.

        Args:
            file_name: Base name of a timeline entry.

        Returns:
            Parsed instant, or None when the name is not an active timeline file.
        """
        dot_index = file_name.find(".")
        if dot_index <= 0:
            return None
        match = _TIME_SEGMENT_PATTERN.match(file_name[:dot_index])
        if match is None:
            return None
        action_state = self._registry.action_state_for(file_name[dot_index:])
        if action_state is None:
            return None
        action, state = action_state
        completion_time = match.group("completion") if state == COMPLETED else None
        return Instant(
            state=state,
            action=action,
            requested_time=match.group("requested"),
            completion_time=completion_time,
        )

    def is_completed_file_of(self, file_name: str, instant: Instant) -> bool:
        """Return whether file_name is the completed form of instant's requested time."""
        parsed = self.parse(file_name)
        return (
            parsed is not None
            and parsed.is_completed
            and parsed.requested_time == instant.requested_time
            and parsed.action == instant.action
        )


def file_naming_for_layout(
    layout: str,
    registry: ExtensionRegistry = ACTIVE_TIMELINE_EXTENSIONS,
) -> InstantFileNaming:
    """Return the naming scheme for a timeline layout."""
    return InstantFileNaming(registry, embed_completion_time=layout != LAYOUT_LEGACY)
