"""Base types for upload validation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one upload.

    On success `mime_type` holds the sniffed (not declared) MIME type.
    On failure `error` holds a human-readable reason for the caller.
    """

    valid: bool
    mime_type: str | None = None
    size_bytes: int = 0
    error: str | None = None

    @classmethod
    def ok(cls, mime_type: str, size_bytes: int) -> ValidationResult:
        return cls(valid=True, mime_type=mime_type, size_bytes=size_bytes)

    @classmethod
    def invalid(cls, error: str) -> ValidationResult:
        return cls(valid=False, error=error)


class Validator(Protocol):
    """Protocol for upload validators.

    The storage engine consults a validator before any side effect and
    treats rejection reasons as opaque strings.
    """

    def validate(
        self,
        data: bytes,
        *,
        filename: str | None,
        declared_mime_type: str | None = None,
    ) -> ValidationResult:
        """Validate raw upload content.

        Args:
            data: The full upload content.
            filename: Original client-side filename (source of the extension).
            declared_mime_type: MIME type the client claimed; informational only.

        Returns:
            Validation result carrying the sniffed MIME type or a reason.
        """
        ...
