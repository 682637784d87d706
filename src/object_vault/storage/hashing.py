"""Content hashing for deduplication.

The digest is the identity of stored content: equal bytes always map to the
same digest regardless of filename or declared MIME type.
"""

from __future__ import annotations

import hashlib
import re
from typing import BinaryIO, Final

DIGEST_ALGORITHM: Final[str] = "sha256"
DIGEST_HEX_LENGTH: Final[int] = 64
CHUNK_SIZE: Final[int] = 64 * 1024

# Lowercase hex only, so one content maps to exactly one key string
_DIGEST_PATTERN: Final[re.Pattern[str]] = re.compile(r"[a-f0-9]{64}")


def hash_bytes(data: bytes) -> str:
    """Compute the SHA-256 hex digest of in-memory content."""
    return hashlib.sha256(data).hexdigest()


def hash_stream(stream: BinaryIO, *, chunk_size: int = CHUNK_SIZE) -> str:
    """Compute the SHA-256 hex digest of a stream in a single buffered pass.

    The stream is consumed from its current position to EOF.
    """
    hasher = hashlib.sha256()
    for chunk in iter(lambda: stream.read(chunk_size), b""):
        hasher.update(chunk)
    return hasher.hexdigest()


def is_valid_digest(value: str) -> bool:
    """Check that a value is a well-formed digest (64 lowercase hex chars)."""
    return bool(_DIGEST_PATTERN.fullmatch(value))
