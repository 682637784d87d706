"""Filesystem blob store.

Stores bytes on a date-sharded, content-addressed layout:

    {root}/YYYY/MM/DD/{digest}{extension}

The blob store knows nothing about reference counts or timestamps beyond
the creation date used to pick the shard; keeping it consistent with the
metadata store is the storage engine's job.
"""

from __future__ import annotations

import logging
import os
import re
import uuid
from collections.abc import Iterator
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Final

from object_vault.storage.errors import (
    BlobNotFoundError,
    BlobStoreError,
    InvalidDigestError,
    PathTraversalError,
)
from object_vault.storage.hashing import is_valid_digest

logger = logging.getLogger(__name__)

TMP_SUFFIX: Final[str] = ".tmp"

_EXTENSION_PATTERN: Final[re.Pattern[str]] = re.compile(r"\.[a-z0-9]{1,10}")
_SAFE_SEGMENT_PATTERN: Final[re.Pattern[str]] = re.compile(r"[A-Za-z0-9_\-.]+")

# A concurrent delete may prune a shard directory between mkdir and write
_WRITE_ATTEMPTS: Final[int] = 3


def safe_extension(extension: str) -> str:
    """Return the extension if it is safe to embed in a file name, else ""."""
    extension = extension.lower()
    if _EXTENSION_PATTERN.fullmatch(extension):
        return extension
    return ""


def _is_path_traversal(relative_path: str) -> bool:
    """Check if a relative path could address anything outside the root.

    Refuses empty paths, null bytes, backslashes, absolute paths, drive
    letters, "." / ".." segments and any segment with unexpected characters.
    """
    if not relative_path or "\x00" in relative_path or "\\" in relative_path:
        return True
    if relative_path.startswith(("/", "~")):
        return True
    if len(relative_path) >= 2 and relative_path[1] == ":":
        return True

    segments = relative_path.split("/")
    for segment in segments:
        if segment in ("", ".", ".."):
            return True
        if not _SAFE_SEGMENT_PATTERN.fullmatch(segment):
            return True
    return False


class FilesystemBlobStore:
    """Content-addressed blob storage on the local filesystem.

    Writes are atomic: bytes go to a hidden temporary sibling, are fsynced,
    then renamed over the target. Rewriting the same digest is idempotent.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).expanduser().resolve()
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BlobStoreError(
                message=f"Failed to create store root: {e}",
                cause=e,
            ) from e
        logger.debug("FilesystemBlobStore initialized with root=%s", self._root)

    @property
    def root(self) -> Path:
        """Return the store root directory."""
        return self._root

    def relative_path_for(self, digest: str, extension: str, created_at: datetime) -> str:
        """Compute the deterministic relative path for a blob."""
        if not is_valid_digest(digest):
            raise InvalidDigestError(
                message="Invalid digest: must be 64 lowercase hex characters",
                digest=digest[:64],
            )
        shard = f"{created_at:%Y/%m/%d}"
        return f"{shard}/{digest}{safe_extension(extension)}"

    def resolve(self, relative_path: str) -> Path:
        """Map a relative path to an absolute path guaranteed to be under the root.

        Raises:
            PathTraversalError: If the path is malformed or escapes the root.
        """
        if _is_path_traversal(relative_path):
            raise PathTraversalError(
                message="Invalid path: traversal or unsafe characters detected",
                path=relative_path[:200],
            )

        path = self._root.joinpath(*PurePosixPath(relative_path).parts)
        # Symlinks inside the root could still point elsewhere
        if not path.resolve().is_relative_to(self._root):
            raise PathTraversalError(
                message="Path resolves outside store root",
                path=relative_path,
            )
        return path

    def write(self, digest: str, extension: str, data: bytes, *, created_at: datetime) -> str:
        """Durably write content and return its path relative to the root.

        An existing file at the target is replaced.

        Raises:
            InvalidDigestError: If the digest is malformed.
            BlobStoreError: If the filesystem cannot complete the write.
        """
        relative_path = self.relative_path_for(digest, extension, created_at)
        target = self.resolve(relative_path)

        for attempt in range(1, _WRITE_ATTEMPTS + 1):
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                self._write_atomic(target, data)
                break
            except FileNotFoundError as e:
                if attempt == _WRITE_ATTEMPTS:
                    raise BlobStoreError(
                        message=f"Failed to write blob: {e}",
                        digest=digest,
                        path=relative_path,
                        cause=e,
                    ) from e
                logger.debug("Shard directory vanished during write, retrying: %s", relative_path)
            except OSError as e:
                raise BlobStoreError(
                    message=f"Failed to write blob: {e}",
                    digest=digest,
                    path=relative_path,
                    cause=e,
                ) from e

        logger.debug("Wrote blob %s (%d bytes) to %s", digest[:8], len(data), relative_path)
        return relative_path

    def _write_atomic(self, target: Path, data: bytes) -> None:
        tmp_file = target.parent / f".{target.name}.{uuid.uuid4().hex}{TMP_SUFFIX}"
        try:
            with tmp_file.open("wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            tmp_file.replace(target)
        finally:
            tmp_file.unlink(missing_ok=True)

    def read(self, relative_path: str) -> bytes:
        """Read a blob's content.

        Raises:
            BlobNotFoundError: If no blob exists at the path.
            BlobStoreError: If the file exists but cannot be read.
        """
        path = self.resolve(relative_path)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise BlobNotFoundError(path=relative_path) from e
        except OSError as e:
            raise BlobStoreError(
                message=f"Failed to read blob: {e}",
                path=relative_path,
                cause=e,
            ) from e

    def exists(self, relative_path: str) -> bool:
        return self.resolve(relative_path).is_file()

    def delete(self, relative_path: str) -> bool:
        """Remove a blob and prune now-empty shard directories.

        Directories are removed walking upward while empty, stopping at
        (and never removing) the store root.

        Returns:
            True if a file was removed, False if none existed.

        Raises:
            BlobStoreError: If the file exists but cannot be removed.
        """
        path = self.resolve(relative_path)
        try:
            path.unlink()
            removed = True
        except FileNotFoundError:
            removed = False
        except OSError as e:
            raise BlobStoreError(
                message=f"Failed to delete blob: {e}",
                path=relative_path,
                cause=e,
            ) from e

        self._prune_empty_parents(path.parent)
        if removed:
            logger.debug("Deleted blob %s", relative_path)
        return removed

    def _prune_empty_parents(self, directory: Path) -> None:
        while directory != self._root and directory.is_relative_to(self._root):
            try:
                directory.rmdir()
            except FileNotFoundError:
                pass
            except OSError:
                # Not empty (or busy): everything above is non-empty too
                return
            directory = directory.parent

    def iter_relative_paths(self) -> Iterator[str]:
        """Yield the relative path of every committed blob under the root.

        In-flight temporary files are skipped.
        """
        for dirpath, _dirnames, filenames in os.walk(self._root):
            for filename in filenames:
                if filename.startswith(".") and filename.endswith(TMP_SUFFIX):
                    continue
                full = Path(dirpath) / filename
                yield full.relative_to(self._root).as_posix()
