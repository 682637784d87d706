"""Shared pytest fixtures for ObjectVault tests."""

from __future__ import annotations

import io
from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from PIL import Image

from object_vault.storage.blob_store import FilesystemBlobStore
from object_vault.storage.engine import StorageEngine
from object_vault.storage.metadata_store import JsonMetadataStore
from object_vault.validation import ImageValidator

ImageFactory = Callable[..., bytes]

START = datetime(2026, 3, 14, 9, 26, 53, 589793, tzinfo=UTC)

DEFAULT_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
DEFAULT_MIME_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}


class FakeClock:
    """Manually advanced clock for deterministic timestamps."""

    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> None:
        self.current += delta


def create_test_image(
    fmt: str = "PNG",
    color: tuple[int, int, int] = (255, 0, 0),
    size: tuple[int, int] = (8, 8),
) -> bytes:
    """Create a small real image in the given Pillow format."""
    img = Image.new("RGB", size, color=color)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def make_image() -> ImageFactory:
    return create_test_image


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store_root(tmp_path: Path) -> Path:
    return tmp_path / "uploads"


@pytest.fixture
def metadata_path(tmp_path: Path) -> Path:
    return tmp_path / "meta" / "file-metadata.json"


@pytest.fixture
def validator() -> ImageValidator:
    return ImageValidator(
        max_object_size=5 * 1024 * 1024,
        allowed_extensions=DEFAULT_EXTENSIONS,
        allowed_mime_types=DEFAULT_MIME_TYPES,
    )


@pytest.fixture
def blob_store(store_root: Path) -> FilesystemBlobStore:
    return FilesystemBlobStore(store_root)


@pytest.fixture
def metadata_store(metadata_path: Path) -> JsonMetadataStore:
    return JsonMetadataStore(metadata_path)


@pytest.fixture
def engine(
    metadata_store: JsonMetadataStore,
    blob_store: FilesystemBlobStore,
    validator: ImageValidator,
    clock: FakeClock,
) -> Iterator[StorageEngine]:
    vault = StorageEngine(metadata_store, blob_store, validator, clock=clock)
    yield vault
    vault.close()


def blob_files(root: Path) -> list[Path]:
    """All committed blob files under a store root."""
    return sorted(p for p in root.rglob("*") if p.is_file() and not p.name.endswith(".tmp"))
