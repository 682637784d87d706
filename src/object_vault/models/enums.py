"""Enumerations for ObjectVault data model."""

from enum import Enum


class StoreStatus(str, Enum):
    """Outcome of a store call."""

    STORED = "stored"  # Novel content, blob written
    DUPLICATE = "duplicate"  # Dedup hit, no bytes written
    REJECTED = "rejected"  # Validation failed, nothing touched
    FAILED = "failed"  # I/O failure, nothing committed


class MetadataBackend(str, Enum):
    """Persistence backend for the metadata store."""

    JSON = "json"  # Whole record set rewritten to one JSON file
    SQLITE = "sqlite"  # One row per record via SQLAlchemy


class DeleteStatus(str, Enum):
    """Outcome of a delete call."""

    DELETED = "deleted"  # Blob and record removed
    NOT_FOUND = "not_found"  # Unknown or malformed digest, nothing touched
    FAILED = "failed"  # I/O failure, record kept (or orphaned for the next sweep)
