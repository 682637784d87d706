"""Retention sweeping: reclaim objects older than the retention window.

Age is measured from creation, not last access, so content that keeps
being re-uploaded still expires on schedule.

The sweeper owns no timer. Whatever hosts it (the API lifespan task, cron,
an operator via the CLI) calls `sweep` or `run_sweep` on its own schedule.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from object_vault.models.enums import DeleteStatus
from object_vault.models.record import as_utc
from object_vault.storage.engine import StorageEngine
from object_vault.storage.errors import StorageError

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """Outcome of one sweep."""

    cutoff: datetime
    deleted: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    orphans_repaired: list[str] = field(default_factory=list)
    remaining: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "cutoff": self.cutoff.isoformat(),
            "deleted": len(self.deleted),
            "failed": len(self.failed),
            "orphans_repaired": len(self.orphans_repaired),
            "remaining": self.remaining,
        }


class RetentionSweeper:
    """Deletes expired objects through the storage engine's delete path.

    Usage:
        sweeper = RetentionSweeper(engine, timedelta(hours=24))
        deleted = sweeper.run_sweep()
    """

    def __init__(self, engine: StorageEngine, retention_window: timedelta) -> None:
        if retention_window <= timedelta(0):
            raise ValueError("retention_window must be positive")
        self._engine = engine
        self._retention_window = retention_window

    @property
    def retention_window(self) -> timedelta:
        return self._retention_window

    def run_sweep(
        self,
        now: datetime | None = None,
        retention_window: timedelta | None = None,
    ) -> int:
        """Run one sweep and return the number of objects deleted."""
        return len(self.sweep(now, retention_window).deleted)

    def sweep(
        self,
        now: datetime | None = None,
        retention_window: timedelta | None = None,
    ) -> SweepReport:
        """Delete every object created before `now - retention_window`.

        Deletions run sequentially; a failure on one object is logged and
        recorded, and the sweep moves on. Surviving records whose blob has
        gone missing are removed as orphans.

        Args:
            now: Reference time (defaults to the engine clock).
            retention_window: Override for the configured window.

        Returns:
            SweepReport with deleted, failed and repaired digests.
        """
        now = as_utc(now) if now is not None else self._engine.now()
        window = retention_window if retention_window is not None else self._retention_window
        report = SweepReport(cutoff=now - window)

        logger.info("Starting cleanup of objects created before %s", report.cutoff.isoformat())
        snapshot = self._engine.metadata_store.snapshot()

        expired = [
            digest for digest, record in snapshot.items() if record.created_at < report.cutoff
        ]
        for digest in expired:
            result = self._engine.delete(digest)
            if result.deleted:
                report.deleted.append(digest)
            elif result.status is DeleteStatus.FAILED:
                logger.error("Failed to delete expired object %s: %s", digest[:8], result.error)
                report.failed[digest] = result.error or "delete failed"

        expired_set = set(expired)
        for digest in snapshot:
            if digest in expired_set:
                continue
            try:
                if self._engine.repair_orphan_record(digest):
                    report.orphans_repaired.append(digest)
            except StorageError as e:
                logger.error("Failed to repair orphan record %s: %s", digest[:8], e)
                report.failed[digest] = str(e)

        report.remaining = len(self._engine.metadata_store)
        logger.info(
            "Cleanup completed. Deleted %d files, %d failures, %d orphans repaired, %d remaining.",
            len(report.deleted),
            len(report.failed),
            len(report.orphans_repaired),
            report.remaining,
        )
        return report
