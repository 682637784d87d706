"""Background services for ObjectVault."""

from object_vault.services.integrity import IntegrityChecker, IntegrityReport
from object_vault.services.retention import RetentionSweeper, SweepReport

__all__ = [
    "IntegrityChecker",
    "IntegrityReport",
    "RetentionSweeper",
    "SweepReport",
]
