"""Metadata store: the authoritative digest -> ObjectRecord mapping.

Provides the MetadataStore interface and the JSON-file backend. Every
mutation is write-through: `put` and `delete` return only after the full
record set is durable, and the in-memory view changes only once that
succeeded.

File format:
    {"version": 1, "records": {"<digest>": {<ObjectRecord fields>}, ...}}
"""

from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Final

from pydantic import ValidationError

from object_vault.models.record import ObjectRecord
from object_vault.storage.errors import MetadataCorruptError, MetadataPersistenceError

logger = logging.getLogger(__name__)

FORMAT_VERSION: Final[int] = 1


class MetadataStore(ABC):
    """Abstract base class for metadata store backends.

    All implementations must provide:
    - Linearizable get/put/delete (no caller sees a half-applied update)
    - Durability before put/delete return
    - Snapshots that are safe to iterate without holding any lock

    Implementations:
    - JsonMetadataStore: whole record set in one JSON file
    - SqlMetadataStore: one row per record via SQLAlchemy
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier for logging."""
        ...

    @abstractmethod
    def get(self, digest: str) -> ObjectRecord | None:
        """Return the record for a digest, or None if absent."""
        ...

    @abstractmethod
    def put(self, record: ObjectRecord) -> None:
        """Insert or replace a record and make it durable.

        Raises:
            MetadataPersistenceError: If persistence fails. The store is
                left exactly as it was before the call.
        """
        ...

    @abstractmethod
    def delete(self, digest: str) -> bool:
        """Remove a record and make the removal durable.

        Returns:
            True if a record was removed, False if none existed.

        Raises:
            MetadataPersistenceError: If persistence fails.
        """
        ...

    @abstractmethod
    def snapshot(self) -> dict[str, ObjectRecord]:
        """Return a point-in-time copy of all records keyed by digest."""
        ...

    def __len__(self) -> int:
        return len(self.snapshot())

    def close(self) -> None:
        """Release backend resources. Default: nothing to release."""


class JsonMetadataStore(MetadataStore):
    """Metadata store persisting the whole record set to one JSON file.

    The file is rewritten on every mutation via a temporary sibling and an
    atomic rename, so a crash leaves either the old or the new set on disk.
    """

    def __init__(self, path: str | Path) -> None:
        """Open the store, loading any existing record set.

        Args:
            path: Location of the metadata file. A missing file means an
                empty store; its parent directory is created on first write.

        Raises:
            MetadataCorruptError: If the file exists but cannot be parsed.
        """
        self._path = Path(path).expanduser()
        self._lock = threading.RLock()
        self._records: dict[str, ObjectRecord] = self._load()
        logger.info("Loaded %d metadata records from %s", len(self._records), self._path)

    @property
    def backend_name(self) -> str:
        return "json"

    @property
    def path(self) -> Path:
        return self._path

    def get(self, digest: str) -> ObjectRecord | None:
        with self._lock:
            return self._records.get(digest)

    def put(self, record: ObjectRecord) -> None:
        with self._lock:
            updated = dict(self._records)
            updated[record.digest] = record
            self._persist(updated, digest=record.digest)
            self._records = updated

    def delete(self, digest: str) -> bool:
        with self._lock:
            if digest not in self._records:
                return False
            updated = dict(self._records)
            del updated[digest]
            self._persist(updated, digest=digest)
            self._records = updated
            return True

    def snapshot(self) -> dict[str, ObjectRecord]:
        with self._lock:
            return dict(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _load(self) -> dict[str, ObjectRecord]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise MetadataCorruptError(
                f"Cannot read metadata file {self._path}: {e}", cause=e
            ) from e

        try:
            document = json.loads(raw)
            return _parse_document(document)
        except (json.JSONDecodeError, ValidationError, TypeError, KeyError, ValueError) as e:
            raise MetadataCorruptError(
                f"Metadata file {self._path} is corrupt: {e}", cause=e
            ) from e

    def _persist(self, records: dict[str, ObjectRecord], *, digest: str | None = None) -> None:
        document = {
            "version": FORMAT_VERSION,
            "records": {key: record.to_dict() for key, record in records.items()},
        }
        tmp_file = self._path.with_name(f".{self._path.name}.{uuid.uuid4().hex}.tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_file.open("w", encoding="utf-8") as handle:
                json.dump(document, handle, indent=2, sort_keys=True)
                handle.flush()
                os.fsync(handle.fileno())
            tmp_file.replace(self._path)
        except OSError as e:
            logger.error("Failed to persist metadata to %s: %s", self._path, e, exc_info=True)
            raise MetadataPersistenceError(
                message=f"Failed to persist metadata: {e}",
                digest=digest,
                cause=e,
            ) from e
        finally:
            tmp_file.unlink(missing_ok=True)
        logger.debug("Persisted %d metadata records", len(records))


def _parse_document(document: Any) -> dict[str, ObjectRecord]:
    if not isinstance(document, dict):
        raise ValueError("top-level value must be an object")
    version = document.get("version")
    if version != FORMAT_VERSION:
        raise ValueError(f"unsupported format version {version!r}")
    raw_records = document["records"]
    if not isinstance(raw_records, dict):
        raise ValueError("'records' must be an object")

    records: dict[str, ObjectRecord] = {}
    for key, raw in raw_records.items():
        record = ObjectRecord.from_dict(raw)
        if record.digest != key:
            raise ValueError(f"record key {key[:8]} does not match digest {record.digest[:8]}")
        records[key] = record
    return records
