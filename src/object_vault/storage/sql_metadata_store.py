"""SQL-backed metadata store.

Keeps one row per record instead of rewriting the whole set on every
mutation, while preserving the same contract: a record is durable once
`put` returns. Used when `metadata_backend` is "sqlite".
"""

from __future__ import annotations

import logging
import threading

from pydantic import ValidationError
from sqlalchemy import Engine, delete, select
from sqlalchemy.exc import SQLAlchemyError

from object_vault.db import create_session_factory, init_db
from object_vault.models.blob import BlobRow
from object_vault.models.record import ObjectRecord, as_utc
from object_vault.storage.errors import MetadataCorruptError, MetadataPersistenceError
from object_vault.storage.metadata_store import MetadataStore

logger = logging.getLogger(__name__)


def _to_row(record: ObjectRecord) -> BlobRow:
    return BlobRow(
        digest=record.digest,
        logical_id=record.logical_id,
        original_name=record.original_name,
        mime_type=record.mime_type,
        size_bytes=record.size_bytes,
        stored_relative_path=record.stored_relative_path,
        created_at=as_utc(record.created_at),
        last_accessed_at=as_utc(record.last_accessed_at),
        reference_count=record.reference_count,
    )


def _to_record(row: BlobRow) -> ObjectRecord:
    return ObjectRecord(
        digest=row.digest,
        logical_id=row.logical_id,
        original_name=row.original_name,
        mime_type=row.mime_type,
        size_bytes=row.size_bytes,
        stored_relative_path=row.stored_relative_path,
        created_at=as_utc(row.created_at),
        last_accessed_at=as_utc(row.last_accessed_at),
        reference_count=row.reference_count,
    )


class SqlMetadataStore(MetadataStore):
    """Metadata store backed by a SQL database (SQLite by default).

    Usage:
        engine = create_metadata_engine("sqlite:///object-vault.db")
        store = SqlMetadataStore(engine)
    """

    def __init__(self, engine: Engine) -> None:
        """Create tables if needed and verify existing rows are readable.

        Raises:
            MetadataCorruptError: If the database cannot be opened or holds
                rows that do not form valid records.
        """
        self._engine = engine
        self._session_factory = create_session_factory(engine)
        self._lock = threading.RLock()
        try:
            init_db(engine)
            count = len(self.snapshot())
        except (SQLAlchemyError, ValidationError) as e:
            raise MetadataCorruptError(f"Metadata database is unusable: {e}", cause=e) from e
        logger.info("Loaded %d metadata records from %s", count, engine.url)

    @property
    def backend_name(self) -> str:
        return "sqlite"

    def get(self, digest: str) -> ObjectRecord | None:
        with self._lock, self._session_factory() as session:
            row = session.get(BlobRow, digest)
            return _to_record(row) if row is not None else None

    def put(self, record: ObjectRecord) -> None:
        with self._lock, self._session_factory() as session:
            try:
                session.merge(_to_row(record))
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                logger.error("Failed to persist record %s: %s", record.digest[:8], e, exc_info=True)
                raise MetadataPersistenceError(
                    message=f"Failed to persist metadata: {e}",
                    digest=record.digest,
                    cause=e,
                ) from e

    def delete(self, digest: str) -> bool:
        with self._lock, self._session_factory() as session:
            try:
                result = session.execute(delete(BlobRow).where(BlobRow.digest == digest))
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                logger.error("Failed to delete record %s: %s", digest[:8], e, exc_info=True)
                raise MetadataPersistenceError(
                    message=f"Failed to persist metadata: {e}",
                    digest=digest,
                    cause=e,
                ) from e
            return bool(result.rowcount)

    def snapshot(self) -> dict[str, ObjectRecord]:
        with self._lock, self._session_factory() as session:
            rows = session.scalars(select(BlobRow)).all()
            return {row.digest: _to_record(row) for row in rows}

    def close(self) -> None:
        self._engine.dispose()
