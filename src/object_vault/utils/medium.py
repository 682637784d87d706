"""MIME type sniffing from content bytes.

Detects what an upload actually is from its magic bytes, independent of
the filename or the MIME type the client declared.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Final

OCTET_STREAM: Final[str] = "application/octet-stream"

# Magic byte signatures: (magic_bytes, offset, mime_type)
# RIFF and ftyp containers are resolved separately.
_MAGIC_SIGNATURES: Final[list[tuple[bytes, int, str]]] = [
    # Images
    (b"\xff\xd8\xff", 0, "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", 0, "image/png"),
    (b"GIF87a", 0, "image/gif"),
    (b"GIF89a", 0, "image/gif"),
    (b"BM", 0, "image/bmp"),
    (b"II*\x00", 0, "image/tiff"),  # little-endian
    (b"MM\x00*", 0, "image/tiff"),  # big-endian
    # Video
    (b"\x1aE\xdf\xa3", 0, "video/webm"),  # EBML (WebM/MKV)
    # Audio
    (b"ID3", 0, "audio/mpeg"),
    (b"\xff\xfb", 0, "audio/mpeg"),  # MP3 frame sync
    (b"\xff\xfa", 0, "audio/mpeg"),
    (b"\xff\xf3", 0, "audio/mpeg"),
    (b"\xff\xf2", 0, "audio/mpeg"),
    (b"fLaC", 0, "audio/flac"),
    (b"OggS", 0, "audio/ogg"),
    # Documents
    (b"%PDF-", 0, "application/pdf"),
    (b"PK\x03\x04", 0, "application/zip"),
]

_RIFF_TYPES: Final[dict[bytes, str]] = {
    b"WEBP": "image/webp",
    b"WAVE": "audio/wav",
    b"AVI ": "video/x-msvideo",
}

_HEIC_BRANDS: Final[frozenset[bytes]] = frozenset(
    {b"heic", b"heix", b"hevc", b"hevx", b"mif1", b"msf1"}
)
_AUDIO_BRANDS: Final[frozenset[bytes]] = frozenset({b"M4A ", b"M4B "})

# Which extensions are truthful for each image MIME type
MIME_EXTENSIONS: Final[dict[str, frozenset[str]]] = {
    "image/jpeg": frozenset({".jpg", ".jpeg"}),
    "image/png": frozenset({".png"}),
    "image/gif": frozenset({".gif"}),
    "image/webp": frozenset({".webp"}),
    "image/bmp": frozenset({".bmp"}),
    "image/tiff": frozenset({".tif", ".tiff"}),
    "image/heic": frozenset({".heic", ".heif"}),
}


def sniff_mime_type(data: bytes) -> str:
    """Detect the MIME type of content from its leading bytes.

    Args:
        data: Raw content; only the leading bytes are inspected.

    Returns:
        Detected MIME type; "text/plain" or "application/json" for textual
        content, OCTET_STREAM when nothing matches.
    """
    if not data:
        return OCTET_STREAM

    mime_type = _detect_by_magic(data)
    if mime_type is not None:
        return mime_type

    return _detect_text_or_json(data) or OCTET_STREAM


def extension_of(filename: str) -> str:
    """Return the lowercased extension including the dot, or "" if none.

    A leading dot (".hidden") does not start an extension.
    """
    name = Path(filename).name
    dot = name.rfind(".")
    if dot <= 0:
        return ""
    return name[dot:].lower()


def _detect_by_magic(data: bytes) -> str | None:
    """Detect MIME type from magic bytes."""
    # RIFF container (WebP, WAV, AVI)
    if data.startswith(b"RIFF") and len(data) >= 12:
        return _RIFF_TYPES.get(data[8:12])

    ftyp_mime = _check_ftyp(data)
    if ftyp_mime is not None:
        return ftyp_mime

    for magic, offset, mime_type in _MAGIC_SIGNATURES:
        if data[offset : offset + len(magic)] == magic:
            return mime_type

    return None


def _check_ftyp(data: bytes) -> str | None:
    """Check for an ISO Base Media File Format ftyp box (MP4, MOV, HEIC, M4A)."""
    if len(data) < 12 or data[4:8] != b"ftyp":
        return None

    brand = data[8:12]
    if brand in _HEIC_BRANDS:
        return "image/heic"
    if brand in _AUDIO_BRANDS:
        return "audio/mp4"
    if brand == b"qt  ":
        return "video/quicktime"
    return "video/mp4"


def _detect_text_or_json(data: bytes) -> str | None:
    """Detect if content is JSON or plain text."""
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return None

    stripped = text.strip()
    if stripped.startswith(("{", "[")):
        try:
            json.loads(stripped)
            return "application/json"
        except json.JSONDecodeError:
            pass

    if _is_text_like(text):
        return "text/plain"
    return None


def _is_text_like(text: str) -> bool:
    """Check if string looks like human-readable text (>90% printable)."""
    sample = text[:1000]
    if not sample:
        return False
    printable = sum(1 for char in sample if char.isprintable() or char in "\n\r\t")
    return (printable / len(sample)) > 0.9
