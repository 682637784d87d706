"""ObjectVault: content-addressed object storage with deduplication and retention."""

__version__ = "0.1.0"
