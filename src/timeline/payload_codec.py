"""Instant payload encoding.

The timeline treats payloads as opaque bytes. Typed plans and metadata
reach it through this narrow serialize/deserialize interface; the JSON
codec writes compact, key-sorted documents.
"""

from __future__ import annotations

import json
from dataclasses import asdict, is_dataclass
from typing import Any, Mapping, Protocol

from core.errors import TidemarkCodecError
from core.types import CommitMetadata


class PayloadCodec(Protocol):
    """Encoder/decoder for instant payloads."""

    def serialize(self, payload: object) -> bytes:
        ...

    def deserialize(self, content: bytes) -> Any:
        ...


class JsonPayloadCodec:
    """Compact JSON codec for dictionaries and dataclasses."""

    def serialize(self, payload: object) -> bytes:
        """Encode payload; bytes pass through untouched.

        Raises:
            TidemarkCodecError: If payload is not JSON-serializable.
        """
        if isinstance(payload, (bytes, bytearray)):
            return bytes(payload)
        if is_dataclass(payload) and not isinstance(payload, type):
            payload = asdict(payload)
        try:
            text = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        except (TypeError, ValueError) as error:
            raise TidemarkCodecError(
                f"Failed to encode instant payload of type {type(payload).__name__}: {error}. "
                "Pass bytes, a dict, or a dataclass of JSON-compatible fields."
            ) from error
        return text.encode("utf-8")

    def deserialize(self, content: bytes) -> Any:
        """Decode payload bytes; empty content decodes to an empty dict.

        Raises:
            TidemarkCodecError: If content is not valid UTF-8 JSON.
        """
        if not content:
            return {}
        try:
            return json.loads(content.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as error:
            raise TidemarkCodecError(f"Failed to decode instant payload: {error}.") from error


def commit_metadata_from_payload(payload: Mapping[str, Any]) -> CommitMetadata:
    """Build commit metadata from a decoded payload.

    Raises:
        TidemarkCodecError: If fields have the wrong shape.
    """
    if not isinstance(payload, Mapping):
        raise TidemarkCodecError("Commit metadata payload must be a JSON object.")
    files = payload.get("partition_to_write_files", {})
    extra = payload.get("extra_metadata", {})
    if not isinstance(files, Mapping) or not isinstance(extra, Mapping):
        raise TidemarkCodecError(
            "Commit metadata payload has invalid partition_to_write_files or extra_metadata."
        )
    return CommitMetadata(
        operation_type=str(payload.get("operation_type", "unknown")),
        partition_to_write_files={
            str(partition): tuple(str(path) for path in paths)
            for partition, paths in files.items()
        },
        extra_metadata={str(key): str(value) for key, value in extra.items()},
    )
