"""ObjectVault storage core.

Content-addressed blob storage with write-through metadata:

- FilesystemBlobStore: bytes on a date-sharded path layout
- JsonMetadataStore / SqlMetadataStore: durable digest -> ObjectRecord map
- StorageEngine: validate, hash, dedup, write, commit; delete; stats
"""

from object_vault.storage.blob_store import FilesystemBlobStore
from object_vault.storage.engine import DeleteResult, StorageEngine, StoreResult, StoreStats
from object_vault.storage.errors import (
    BlobNotFoundError,
    BlobStoreError,
    InvalidDigestError,
    MetadataCorruptError,
    MetadataPersistenceError,
    PathTraversalError,
    StorageError,
)
from object_vault.storage.hashing import hash_bytes, hash_stream
from object_vault.storage.metadata_store import JsonMetadataStore, MetadataStore
from object_vault.storage.sql_metadata_store import SqlMetadataStore

__all__ = [
    "BlobNotFoundError",
    "BlobStoreError",
    "DeleteResult",
    "FilesystemBlobStore",
    "InvalidDigestError",
    "JsonMetadataStore",
    "MetadataCorruptError",
    "MetadataPersistenceError",
    "MetadataStore",
    "PathTraversalError",
    "SqlMetadataStore",
    "StorageEngine",
    "StorageError",
    "StoreResult",
    "StoreStats",
    "hash_bytes",
    "hash_stream",
]
