"""S3 timeline store.

Write-once creates rely on S3 conditional writes (``IfNoneMatch="*"``):
concurrent puts of the same key produce exactly one success and the rest
fail with ``PreconditionFailed``. S3 has no rename, so the legacy
protocol degrades to copy-then-delete on this backend.
"""

from __future__ import annotations

from typing import Any

from core.config import TidemarkConfig
from core.errors import (
    TidemarkAlreadyExistsError,
    TidemarkDependencyError,
    TidemarkNotFoundError,
    TidemarkStorageError,
)
from core.logging_config import get_logger
from core.s3_uri import parse_s3_uri
from store.timeline_store import TimelineStore

_LOGGER = get_logger(__name__)
_NOT_FOUND_CODES = frozenset({"NoSuchKey", "404", "NotFound"})
_CONFLICT_CODES = frozenset({"PreconditionFailed", "412", "ConditionalRequestConflict", "409"})


class S3TimelineStore(TimelineStore):
    """Timeline store backed by an S3 bucket."""

    def __init__(self, s3_client: Any) -> None:
        self._s3 = s3_client

    def exists(self, path: str) -> bool:
        location = parse_s3_uri(path)
        try:
            self._s3.head_object(Bucket=location.bucket, Key=location.key)
        except Exception as error:
            if _error_code(error) in _NOT_FOUND_CODES:
                return False
            raise _storage_error("exists", path, error) from error
        return True

    def open(self, path: str) -> bytes:
        location = parse_s3_uri(path)
        try:
            response = self._s3.get_object(Bucket=location.bucket, Key=location.key)
            return bytes(response["Body"].read())
        except Exception as error:
            if _error_code(error) in _NOT_FOUND_CODES:
                raise TidemarkNotFoundError(
                    f"Timeline object not found at {path}. "
                    "Reload the timeline to pick up external changes.",
                    path=path,
                ) from error
            raise _storage_error("open", path, error) from error

    def create_immutable(self, path: str, content: bytes) -> None:
        self._put(path, content, conditional=True, operation="create_immutable")

    def create(self, path: str, content: bytes, overwrite: bool) -> None:
        self._put(path, content, conditional=not overwrite, operation="create")

    def rename(self, src: str, dst: str) -> bool:
        if not self.exists(src) or self.exists(dst):
            return False
        source = parse_s3_uri(src)
        target = parse_s3_uri(dst)
        _LOGGER.warning("legacy_rename_on_object_store", src=src, dst=dst)
        try:
            self._s3.copy_object(
                Bucket=target.bucket,
                Key=target.key,
                CopySource={"Bucket": source.bucket, "Key": source.key},
            )
            self._s3.delete_object(Bucket=source.bucket, Key=source.key)
        except Exception as error:
            raise _storage_error("rename", src, error) from error
        return True

    def delete(self, path: str) -> bool:
        if not self.exists(path):
            return False
        location = parse_s3_uri(path)
        try:
            self._s3.delete_object(Bucket=location.bucket, Key=location.key)
        except Exception as error:
            raise _storage_error("delete", path, error) from error
        return True

    def list(self, directory: str) -> set[str]:
        location = parse_s3_uri(directory.rstrip("/") + "/")
        names: set[str] = set()
        try:
            paginator = self._s3.get_paginator("list_objects_v2")
            for page in paginator.paginate(
                Bucket=location.bucket, Prefix=location.key, Delimiter="/"
            ):
                for item in page.get("Contents", []):
                    name = str(item["Key"])[len(location.key):]
                    if name:
                        names.add(name)
        except Exception as error:
            raise _storage_error("list", directory, error) from error
        return names

    def _put(self, path: str, content: bytes, conditional: bool, operation: str) -> None:
        location = parse_s3_uri(path)
        kwargs: dict[str, Any] = {"Bucket": location.bucket, "Key": location.key, "Body": content}
        if conditional:
            kwargs["IfNoneMatch"] = "*"
        try:
            self._s3.put_object(**kwargs)
        except Exception as error:
            if conditional and _error_code(error) in _CONFLICT_CODES:
                raise TidemarkAlreadyExistsError(
                    f"Timeline object {path} already exists. Another writer completed this step; "
                    "reload the timeline instead of retrying.",
                    path=path,
                ) from error
            raise _storage_error(operation, path, error) from error


def create_s3_client(config: TidemarkConfig) -> Any:
    """Create boto3 S3 client for timeline access.

    Args:
        config: Runtime config with optional session settings.

    Returns:
        Boto3 S3 client.

    Raises:
        TidemarkDependencyError: If boto3 is missing.
    """
    try:
        import boto3
    except ImportError as error:
        raise TidemarkDependencyError(
            "S3 tables require boto3, but it is not installed. "
            "Install boto3 to open timelines under s3:// table roots."
        ) from error
    session_kwargs: dict[str, str] = {}
    if config.s3_profile:
        session_kwargs["profile_name"] = config.s3_profile
    if config.s3_region:
        session_kwargs["region_name"] = config.s3_region
    session = boto3.session.Session(**session_kwargs)
    return session.client("s3")


def _error_code(error: Exception) -> str:
    """Extract the S3 error code from a botocore ClientError."""
    response = getattr(error, "response", None)
    if not isinstance(response, dict):
        return ""
    return str(response.get("Error", {}).get("Code", ""))


def _storage_error(operation: str, path: str, error: Exception) -> TidemarkStorageError:
    return TidemarkStorageError(
        f"S3 {operation} failed for {path}: {error}. Check AWS credentials and retry.",
        operation=operation,
        path=path,
    )
