"""Storage engine: validation, hashing, dedup, blob write and metadata commit.

The engine is the only component that writes to both the blob store and
the metadata store, and it keeps them consistent:

- a record is committed only after its blob is durably on disk
- a blob written for a record that then fails to commit is removed again
- deletion removes the blob first, then the record

Store calls for the same digest are serialized, so concurrent uploads of
identical content produce one blob and one record whose reference count
counts every upload. Calls for different digests proceed in parallel.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, BinaryIO

from object_vault.db import create_metadata_engine
from object_vault.models.enums import DeleteStatus, MetadataBackend, StoreStatus
from object_vault.models.record import ObjectRecord, as_utc, make_logical_id
from object_vault.storage.blob_store import FilesystemBlobStore
from object_vault.storage.errors import MetadataPersistenceError, StorageError
from object_vault.storage.hashing import hash_bytes, is_valid_digest
from object_vault.storage.metadata_store import JsonMetadataStore, MetadataStore
from object_vault.storage.sql_metadata_store import SqlMetadataStore
from object_vault.utils.medium import extension_of
from object_vault.validation import ImageValidator, Validator

if TYPE_CHECKING:
    from object_vault.config import Settings

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_MB = 1024 * 1024


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class StoreResult:
    """Result of a store call. Never raised; always returned."""

    status: StoreStatus
    logical_id: str | None = None
    digest: str | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status in (StoreStatus.STORED, StoreStatus.DUPLICATE)

    @property
    def is_duplicate(self) -> bool:
        return self.status is StoreStatus.DUPLICATE

    @classmethod
    def stored(cls, logical_id: str, digest: str) -> StoreResult:
        return cls(StoreStatus.STORED, logical_id=logical_id, digest=digest)

    @classmethod
    def duplicate(cls, logical_id: str, digest: str) -> StoreResult:
        return cls(StoreStatus.DUPLICATE, logical_id=logical_id, digest=digest)

    @classmethod
    def rejected(cls, error: str) -> StoreResult:
        return cls(StoreStatus.REJECTED, error=error)

    @classmethod
    def failed(cls, error: str, digest: str | None = None) -> StoreResult:
        return cls(StoreStatus.FAILED, digest=digest, error=error)


@dataclass(frozen=True)
class DeleteResult:
    """Result of a delete call. Never raised; always returned."""

    status: DeleteStatus
    digest: str
    error: str | None = None

    @property
    def deleted(self) -> bool:
        return self.status is DeleteStatus.DELETED

    @classmethod
    def removed(cls, digest: str) -> DeleteResult:
        return cls(DeleteStatus.DELETED, digest)

    @classmethod
    def not_found(cls, digest: str) -> DeleteResult:
        return cls(DeleteStatus.NOT_FOUND, digest)

    @classmethod
    def failed(cls, digest: str, error: str) -> DeleteResult:
        return cls(DeleteStatus.FAILED, digest, error=error)


@dataclass(frozen=True)
class StoreStats:
    """Aggregate view of the store."""

    unique_objects: int
    total_size_bytes: int
    total_uploads: int

    @property
    def total_size_mb(self) -> float:
        return self.total_size_bytes / _MB

    def to_dict(self) -> dict[str, int | float]:
        return {
            "unique_objects": self.unique_objects,
            "total_size_bytes": self.total_size_bytes,
            "total_size_mb": round(self.total_size_mb, 4),
            "total_uploads": self.total_uploads,
        }


class _DigestLocks:
    """Lock table giving each digest its own mutex while it is in use."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}

    @contextmanager
    def hold(self, digest: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(digest, threading.Lock())
            self._users[digest] = self._users.get(digest, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[digest] -= 1
                if self._users[digest] == 0:
                    del self._users[digest]
                    del self._locks[digest]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class StorageEngine:
    """Orchestrates the upload and delete paths over injected stores.

    Usage:
        engine = StorageEngine(metadata_store, blob_store, validator)
        result = engine.store(data, "photo.png")
        if result.success:
            print(result.logical_id, result.is_duplicate)
    """

    def __init__(
        self,
        metadata_store: MetadataStore,
        blob_store: FilesystemBlobStore,
        validator: Validator,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._metadata = metadata_store
        self._blobs = blob_store
        self._validator = validator
        self._clock = clock
        self._locks = _DigestLocks()

    @classmethod
    def from_settings(cls, config: Settings) -> StorageEngine:
        """Build an engine with the backends selected by configuration."""
        metadata_store: MetadataStore
        if config.metadata_backend is MetadataBackend.SQLITE:
            metadata_store = SqlMetadataStore(
                create_metadata_engine(config.metadata_database_url, echo=config.database_echo)
            )
        else:
            metadata_store = JsonMetadataStore(config.metadata_file_path)

        validator = ImageValidator(
            max_object_size=config.max_object_size,
            allowed_extensions=config.allowed_extensions,
            allowed_mime_types=config.allowed_mime_types,
            verify_decode=config.verify_image_decode,
        )
        return cls(metadata_store, FilesystemBlobStore(config.store_root), validator)

    @property
    def metadata_store(self) -> MetadataStore:
        return self._metadata

    @property
    def blob_store(self) -> FilesystemBlobStore:
        return self._blobs

    def now(self) -> datetime:
        """Current time from the injected clock, as aware UTC."""
        return as_utc(self._clock())

    # ── Upload path ──────────────────────────────────────────────────────────

    def store(
        self,
        content: bytes | BinaryIO,
        filename: str | None,
        declared_mime_type: str | None = None,
    ) -> StoreResult:
        """Validate, deduplicate and persist one upload.

        Args:
            content: Upload bytes, or a binary stream read once to EOF.
            filename: Original filename; supplies the stored extension.
            declared_mime_type: MIME type claimed by the client.

        Returns:
            StoreResult: STORED for novel content, DUPLICATE on a dedup hit,
            REJECTED if validation failed (nothing touched), FAILED on an
            I/O error (nothing committed).
        """
        if isinstance(content, bytes):
            data = content
        else:
            try:
                data = content.read()
            except OSError as e:
                logger.error("Failed to read upload %s: %s", filename, e, exc_info=True)
                return StoreResult.failed(f"Error reading upload: {e}")

        validation = self._validator.validate(
            data, filename=filename, declared_mime_type=declared_mime_type
        )
        if not validation.valid:
            reason = validation.error or "Invalid upload"
            logger.warning("Rejected upload %s: %s", filename, reason)
            return StoreResult.rejected(reason)

        digest = hash_bytes(data)
        mime_type = validation.mime_type or declared_mime_type or "application/octet-stream"

        with self._locks.hold(digest):
            existing = self._metadata.get(digest)
            if existing is not None:
                return self._record_duplicate(existing, data, filename)
            return self._store_new(digest, data, filename or "", mime_type)

    def _record_duplicate(
        self, existing: ObjectRecord, data: bytes, filename: str | None
    ) -> StoreResult:
        digest = existing.digest
        try:
            if not self._blobs.exists(existing.stored_relative_path):
                self._restore_blob(existing, data)
            self._metadata.put(existing.touch(self.now()))
        except StorageError as e:
            logger.error("Failed to record duplicate of %s: %s", digest[:8], e, exc_info=True)
            return StoreResult.failed(f"Error updating stored object: {e.message}", digest)

        logger.info("Duplicate file detected: %s (hash: %s)", filename, digest[:8])
        return StoreResult.duplicate(existing.logical_id, digest)

    def _restore_blob(self, record: ObjectRecord, data: bytes) -> None:
        # Orphan record: we hold identical bytes, so put them back where the record points
        logger.warning(
            "Blob missing for %s, restoring %s", record.digest[:8], record.stored_relative_path
        )
        extension = PurePosixPath(record.stored_relative_path).suffix
        self._blobs.write(record.digest, extension, data, created_at=record.created_at)

    def _store_new(self, digest: str, data: bytes, filename: str, mime_type: str) -> StoreResult:
        now = self.now()
        try:
            relative_path = self._blobs.write(
                digest, extension_of(filename), data, created_at=now
            )
        except StorageError as e:
            logger.error("Failed to write blob for %s: %s", filename, e, exc_info=True)
            return StoreResult.failed(f"Error storing file: {e.message}", digest)

        record = ObjectRecord(
            digest=digest,
            logical_id=make_logical_id(digest, now),
            original_name=filename,
            mime_type=mime_type,
            size_bytes=len(data),
            stored_relative_path=relative_path,
            created_at=now,
            last_accessed_at=now,
            reference_count=1,
        )
        try:
            self._metadata.put(record)
        except MetadataPersistenceError as e:
            logger.error("Failed to commit metadata for %s: %s", filename, e, exc_info=True)
            self._discard_blob(relative_path)
            return StoreResult.failed(f"Error saving metadata: {e.message}", digest)

        logger.info("New file stored: %s (ID: %s)", filename, record.logical_id)
        return StoreResult.stored(record.logical_id, digest)

    def _discard_blob(self, relative_path: str) -> None:
        try:
            self._blobs.delete(relative_path)
        except StorageError as e:
            # Left for the integrity check to collect
            logger.error("Could not remove uncommitted blob %s: %s", relative_path, e)

    # ── Delete path ──────────────────────────────────────────────────────────

    def delete(self, digest: str) -> DeleteResult:
        """Delete an object's blob, then its record.

        Returns:
            DeleteResult: DELETED if the object existed and was removed,
            NOT_FOUND for an unknown (or malformed) digest, FAILED on an I/O
            error. When the blob cannot be removed the record is kept; when the
            blob went but the record could not be persisted, the next sweep
            repairs the orphan record.
        """
        if not is_valid_digest(digest):
            return DeleteResult.not_found(digest)

        with self._locks.hold(digest):
            record = self._metadata.get(digest)
            if record is None:
                return DeleteResult.not_found(digest)
            try:
                self._blobs.delete(record.stored_relative_path)
                self._metadata.delete(digest)
            except StorageError as e:
                logger.error("Failed to delete %s: %s", digest[:8], e, exc_info=True)
                return DeleteResult.failed(digest, f"Error deleting object: {e.message}")

        logger.info("Deleted file: %s (ID: %s)", record.stored_relative_path, record.logical_id)
        return DeleteResult.removed(digest)

    def repair_orphan_record(self, digest: str) -> bool:
        """Remove a record whose blob is missing.

        Returns:
            True if the record was an orphan and has been removed.
        """
        with self._locks.hold(digest):
            record = self._metadata.get(digest)
            if record is None or self._blobs.exists(record.stored_relative_path):
                return False
            self._metadata.delete(digest)

        logger.warning(
            "Removed orphan record %s (missing %s)", record.logical_id, record.stored_relative_path
        )
        return True

    def remove_orphan_blob(self, relative_path: str) -> bool:
        """Delete a blob file that no record references.

        Returns:
            True if the file was unreferenced and has been removed.
        """
        digest = PurePosixPath(relative_path).name.split(".", 1)[0]
        with self._locks.hold(digest):
            record = self._metadata.get(digest)
            if record is not None and record.stored_relative_path == relative_path:
                return False
            removed = self._blobs.delete(relative_path)

        if removed:
            logger.warning("Removed unreferenced blob %s", relative_path)
        return removed

    # ── Queries ──────────────────────────────────────────────────────────────

    def get(self, digest: str) -> ObjectRecord | None:
        return self._metadata.get(digest)

    def find_by_logical_id(self, logical_id: str) -> ObjectRecord | None:
        for record in self._metadata.snapshot().values():
            if record.logical_id == logical_id:
                return record
        return None

    def read(self, digest: str) -> bytes | None:
        """Return an object's content, or None if no record exists.

        Raises:
            BlobNotFoundError: If the record exists but its blob does not.
        """
        record = self._metadata.get(digest)
        if record is None:
            return None
        return self._blobs.read(record.stored_relative_path)

    def stats(self) -> StoreStats:
        records = self._metadata.snapshot().values()
        return StoreStats(
            unique_objects=len(records),
            total_size_bytes=sum(record.size_bytes for record in records),
            total_uploads=sum(record.reference_count for record in records),
        )

    def close(self) -> None:
        self._metadata.close()
