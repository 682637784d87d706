"""Image upload validation.

Enforces, in order:
- non-empty content within the size limit
- a filename whose extension is allowed
- a sniffed MIME type that is allowed
- extension/MIME consistency (a PNG named .jpg is refused)
- optionally, that Pillow can actually decode the image
"""

from __future__ import annotations

import io
import logging
from collections.abc import Iterable

from PIL import Image, UnidentifiedImageError

from object_vault.utils.medium import MIME_EXTENSIONS, extension_of, sniff_mime_type
from object_vault.validation.base import ValidationResult

logger = logging.getLogger(__name__)

_MB = 1024 * 1024


class ImageValidator:
    """Validate uploads against size, extension and MIME policies."""

    def __init__(
        self,
        *,
        max_object_size: int,
        allowed_extensions: Iterable[str],
        allowed_mime_types: Iterable[str],
        verify_decode: bool = True,
    ) -> None:
        self._max_object_size = max_object_size
        self._allowed_extensions = frozenset(ext.lower() for ext in allowed_extensions)
        self._allowed_mime_types = frozenset(allowed_mime_types)
        self._verify_decode = verify_decode

    def validate(
        self,
        data: bytes,
        *,
        filename: str | None,
        declared_mime_type: str | None = None,
    ) -> ValidationResult:
        size = len(data)
        if size == 0:
            return ValidationResult.invalid("File is empty")

        if size > self._max_object_size:
            return ValidationResult.invalid(
                f"File size exceeds {self._max_object_size // _MB}MB limit "
                f"(Size: {size / _MB:.2f}MB)"
            )

        if not filename:
            return ValidationResult.invalid("Invalid filename")

        extension = extension_of(filename)
        if extension not in self._allowed_extensions:
            allowed = ", ".join(sorted(self._allowed_extensions))
            return ValidationResult.invalid(
                f"File extension '{extension}' not allowed. Allowed: {allowed}"
            )

        mime_type = sniff_mime_type(data)
        if mime_type not in self._allowed_mime_types:
            return ValidationResult.invalid(
                f"File type '{mime_type}' not allowed. Only images are accepted"
            )

        if extension not in MIME_EXTENSIONS.get(mime_type, frozenset()):
            return ValidationResult.invalid(
                f"File extension '{extension}' does not match actual file type '{mime_type}'"
            )

        if declared_mime_type and declared_mime_type != mime_type:
            logger.debug(
                "Declared MIME type %s differs from sniffed %s for %s",
                declared_mime_type,
                mime_type,
                filename,
            )

        if self._verify_decode and not self._decodes(data):
            return ValidationResult.invalid(f"File is not a readable '{mime_type}' image")

        return ValidationResult.ok(mime_type, size)

    def _decodes(self, data: bytes) -> bool:
        """Check that Pillow can parse the image structure."""
        try:
            with Image.open(io.BytesIO(data)) as img:
                img.verify()
        except (
            UnidentifiedImageError,
            Image.DecompressionBombError,
            OSError,
            SyntaxError,
            ValueError,
        ) as e:
            logger.debug("Image failed to decode: %s", e)
            return False
        return True
