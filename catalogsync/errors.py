"""
Error types for catalogsync.

Per-artifact failures carry an ErrorKind so the synchronizer can record
them without unwinding the whole batch.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Failure taxonomy for a sync run."""
    FETCH_FAILED = "fetch_failed"
    CORRUPT_ARCHIVE = "corrupt_archive"
    MEMBER_NOT_FOUND = "member_not_found"
    STORE_PUT_FAILED = "store_put_failed"
    MANIFEST_PUBLISH_FAILED = "manifest_publish_failed"


class CatalogSyncError(Exception):
    """Base exception for catalogsync errors."""

    def __init__(self, message: str, code: str = "CATALOGSYNC_ERROR"):
        super().__init__(message)
        self.code = code


class ConfigError(CatalogSyncError):
    """Raised when configuration is missing or invalid."""

    def __init__(self, message: str):
        super().__init__(message, code="CONFIG_ERROR")


class RegistryError(CatalogSyncError):
    """Raised when a model registry fails validation."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message, code="REGISTRY_ERROR")
        self.key = key


class FetchError(CatalogSyncError):
    """Raised when bytes cannot be retrieved from a source URI."""

    def __init__(self, uri: str, reason: str, status: Optional[int] = None):
        super().__init__(f"Failed to fetch {uri}: {reason}", code="FETCH_ERROR")
        self.uri = uri
        self.status = status


class ArchiveError(CatalogSyncError):
    """Raised when a downloaded archive cannot be opened."""

    def __init__(self, message: str):
        super().__init__(message, code="ARCHIVE_ERROR")


class StoreError(CatalogSyncError):
    """Raised when the content store rejects or fails an operation."""

    def __init__(self, name: str, reason: str):
        super().__init__(f"Store operation failed for {name}: {reason}", code="STORE_ERROR")
        self.name = name


# ==================== Resolution ====================

class ResolutionError(CatalogSyncError):
    """Raised when a descriptor cannot be resolved to artifact bytes."""

    kind: ErrorKind = ErrorKind.FETCH_FAILED

    def __init__(self, key: str, message: str):
        super().__init__(f"[{key}] {message}", code=self.kind.name)
        self.key = key


class FetchFailedError(ResolutionError):
    kind = ErrorKind.FETCH_FAILED


class CorruptArchiveError(ResolutionError):
    kind = ErrorKind.CORRUPT_ARCHIVE


class MemberNotFoundError(ResolutionError):
    kind = ErrorKind.MEMBER_NOT_FOUND
