"""Data models for ObjectVault."""

from object_vault.models.base import Base
from object_vault.models.blob import BlobRow
from object_vault.models.enums import DeleteStatus, MetadataBackend, StoreStatus
from object_vault.models.record import ObjectRecord, make_logical_id

__all__ = [
    "Base",
    "BlobRow",
    "DeleteStatus",
    "MetadataBackend",
    "ObjectRecord",
    "StoreStatus",
    "make_logical_id",
]
