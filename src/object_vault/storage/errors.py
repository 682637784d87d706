"""Typed exceptions for storage operations.

Validation problems never reach this layer; everything here is either a
malformed identifier or an I/O failure against the blob or metadata store.
"""

from __future__ import annotations


class StorageError(Exception):
    """Base exception for storage operations.

    Attributes:
        message: Human-readable error message.
        digest: Content digest associated with the operation (if applicable).
        path: Relative blob path associated with the operation (if applicable).
    """

    def __init__(
        self,
        message: str,
        *,
        digest: str | None = None,
        path: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.digest = digest
        self.path = path

    def __str__(self) -> str:
        parts = [self.message]
        if self.digest:
            parts.append(f"digest={self.digest[:8]}")
        if self.path:
            parts.append(f"path={self.path}")
        return " ".join(parts)


class InvalidDigestError(StorageError):
    """Raised when a digest is not 64 lowercase hex characters."""

    def __init__(self, message: str = "Invalid digest", *, digest: str | None = None) -> None:
        super().__init__(message, digest=digest)


class PathTraversalError(StorageError):
    """Raised when a relative path would escape the store root.

    This is a security error: "..", absolute paths, backslashes and null
    bytes are all refused rather than normalized.
    """

    def __init__(
        self,
        message: str = "Invalid path: traversal detected",
        *,
        path: str | None = None,
    ) -> None:
        super().__init__(message, path=path)


class BlobStoreError(StorageError):
    """Raised when the filesystem cannot complete a blob operation."""

    def __init__(
        self,
        message: str = "Blob store error",
        *,
        digest: str | None = None,
        path: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, digest=digest, path=path)
        self.cause = cause


class BlobNotFoundError(StorageError):
    """Raised when reading a blob that does not exist."""

    def __init__(self, message: str = "Blob not found", *, path: str | None = None) -> None:
        super().__init__(message, path=path)


class MetadataPersistenceError(StorageError):
    """Raised when the metadata record set cannot be made durable.

    The store's visible state is unchanged when this is raised.
    """

    def __init__(
        self,
        message: str = "Failed to persist metadata",
        *,
        digest: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, digest=digest)
        self.cause = cause


class MetadataCorruptError(StorageError):
    """Raised at startup when persisted metadata exists but cannot be parsed.

    Fatal for the process: a corrupt record set is never silently discarded.
    """

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause
