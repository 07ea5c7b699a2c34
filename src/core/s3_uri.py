"""S3 URI parsing helpers.

This module centralizes S3 URI parsing for the store layer and CLI.
It keeps URI validation behavior consistent across the codebase.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.constants import S3_URI_SCHEME
from core.errors import TidemarkConfigError


@dataclass(frozen=True)
class S3Location:
    """Parsed S3 location model."""

    bucket: str
    key: str


def parse_s3_uri(uri: str) -> S3Location:
    """Parse and validate an S3 URI.

    Args:
        uri: URI in format ``s3://bucket/key``.

    Returns:
        Parsed bucket and key pair.

    Raises:
        TidemarkConfigError: If the URI has no bucket or no key.
    """
    if not uri.startswith(S3_URI_SCHEME):
        _raise_uri_error(uri)
    stripped_uri = uri.removeprefix(S3_URI_SCHEME)
    if "/" not in stripped_uri:
        _raise_uri_error(uri)
    bucket, key = stripped_uri.split("/", 1)
    if not bucket or not key:
        _raise_uri_error(uri)
    return S3Location(bucket=bucket, key=key)


def _raise_uri_error(uri: str) -> None:
    """Raise an invalid URI error.

    Raises:
        TidemarkConfigError: Always.
    """
    raise TidemarkConfigError(
        f"Invalid S3 URI '{uri}': expected s3://bucket/prefix. "
        "Provide both bucket and prefix."
    )
