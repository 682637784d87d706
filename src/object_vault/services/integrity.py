"""Integrity check between the metadata store and the blob store.

Finds the two ways the stores can drift apart after a crash:
- orphan records: a record whose blob file is missing
- orphan files: a blob file no record points at

Optionally re-hashes every blob to catch content that no longer matches
its digest. Corrupt blobs are reported, never repaired automatically.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass, field

from object_vault.storage.engine import StorageEngine
from object_vault.storage.errors import StorageError
from object_vault.storage.hashing import hash_stream

logger = logging.getLogger(__name__)


@dataclass
class IntegrityReport:
    """Findings of one integrity check."""

    orphan_records: list[str] = field(default_factory=list)  # digests
    orphan_files: list[str] = field(default_factory=list)  # relative paths
    corrupt_blobs: list[str] = field(default_factory=list)  # digests
    repaired_records: list[str] = field(default_factory=list)
    removed_files: list[str] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not (self.orphan_records or self.orphan_files or self.corrupt_blobs)


class IntegrityChecker:
    """Compare metadata against blobs on disk and optionally repair drift."""

    def __init__(self, engine: StorageEngine) -> None:
        self._engine = engine

    def check(self, *, repair: bool = False, verify_content: bool = False) -> IntegrityReport:
        """Run the check.

        Args:
            repair: Remove orphan records and orphan files.
            verify_content: Re-hash each blob and compare with its digest.
        """
        report = IntegrityReport()
        blobs = self._engine.blob_store
        snapshot = self._engine.metadata_store.snapshot()

        referenced: set[str] = set()
        for digest, record in snapshot.items():
            referenced.add(record.stored_relative_path)
            try:
                present = blobs.exists(record.stored_relative_path)
            except StorageError as e:
                logger.error("Unusable blob path for %s: %s", digest[:8], e)
                present = False
            if not present:
                report.orphan_records.append(digest)
                continue
            if verify_content and not self._content_matches(digest, record.stored_relative_path):
                report.corrupt_blobs.append(digest)

        for relative_path in blobs.iter_relative_paths():
            if relative_path not in referenced:
                report.orphan_files.append(relative_path)

        if repair:
            self._repair(report)

        logger.info(
            "Integrity check: %d records, %d orphan records, %d orphan files, %d corrupt blobs",
            len(snapshot),
            len(report.orphan_records),
            len(report.orphan_files),
            len(report.corrupt_blobs),
        )
        return report

    def _content_matches(self, digest: str, relative_path: str) -> bool:
        path = self._engine.blob_store.resolve(relative_path)
        try:
            with path.open("rb") as stream:
                actual = hash_stream(stream)
        except OSError as e:
            logger.error("Failed to read blob %s: %s", relative_path, e)
            return False
        return hmac.compare_digest(actual, digest)

    def _repair(self, report: IntegrityReport) -> None:
        for digest in report.orphan_records:
            try:
                if self._engine.repair_orphan_record(digest):
                    report.repaired_records.append(digest)
            except StorageError as e:
                logger.error("Failed to remove orphan record %s: %s", digest[:8], e)

        for relative_path in report.orphan_files:
            try:
                if self._engine.remove_orphan_blob(relative_path):
                    report.removed_files.append(relative_path)
            except StorageError as e:
                logger.error("Failed to remove orphan file %s: %s", relative_path, e)
