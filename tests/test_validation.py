"""Tests for image upload validation."""

from __future__ import annotations

import pytest
from conftest import DEFAULT_EXTENSIONS, DEFAULT_MIME_TYPES, ImageFactory

from object_vault.validation import ImageValidator


class TestImageValidatorAccepts:
    @pytest.mark.parametrize(
        ("fmt", "filename", "mime_type"),
        [
            ("PNG", "photo.png", "image/png"),
            ("JPEG", "photo.jpg", "image/jpeg"),
            ("JPEG", "photo.JPEG", "image/jpeg"),
            ("GIF", "anim.gif", "image/gif"),
            ("WEBP", "pic.webp", "image/webp"),
        ],
    )
    def test_valid_image(
        self,
        validator: ImageValidator,
        make_image: ImageFactory,
        fmt: str,
        filename: str,
        mime_type: str,
    ) -> None:
        data = make_image(fmt)
        result = validator.validate(data, filename=filename)
        assert result.valid, result.error
        assert result.mime_type == mime_type
        assert result.size_bytes == len(data)

    def test_sniffed_type_wins_over_declared(
        self, validator: ImageValidator, make_image: ImageFactory
    ) -> None:
        result = validator.validate(
            make_image("PNG"), filename="a.png", declared_mime_type="image/jpeg"
        )
        assert result.valid
        assert result.mime_type == "image/png"


class TestImageValidatorRejects:
    def test_empty(self, validator: ImageValidator) -> None:
        result = validator.validate(b"", filename="a.png")
        assert not result.valid
        assert result.error == "File is empty"

    def test_too_large(self, make_image: ImageFactory) -> None:
        data = make_image("PNG")
        validator = ImageValidator(
            max_object_size=len(data) - 1,
            allowed_extensions=DEFAULT_EXTENSIONS,
            allowed_mime_types=DEFAULT_MIME_TYPES,
        )
        result = validator.validate(data, filename="a.png")
        assert not result.valid
        assert result.error is not None
        assert "exceeds" in result.error

    def test_missing_filename(self, validator: ImageValidator, make_image: ImageFactory) -> None:
        result = validator.validate(make_image("PNG"), filename=None)
        assert result.error == "Invalid filename"

    def test_disallowed_extension(
        self, validator: ImageValidator, make_image: ImageFactory
    ) -> None:
        result = validator.validate(make_image("PNG"), filename="a.exe")
        assert not result.valid
        assert result.error is not None
        assert "'.exe' not allowed" in result.error

    def test_no_extension(self, validator: ImageValidator, make_image: ImageFactory) -> None:
        result = validator.validate(make_image("PNG"), filename="image")
        assert not result.valid

    def test_disallowed_mime(self, validator: ImageValidator) -> None:
        result = validator.validate(b"plain text pretending", filename="a.png")
        assert not result.valid
        assert result.error is not None
        assert "text/plain" in result.error

    def test_extension_mime_mismatch(
        self, validator: ImageValidator, make_image: ImageFactory
    ) -> None:
        result = validator.validate(make_image("PNG"), filename="a.jpg")
        assert not result.valid
        assert result.error is not None
        assert "does not match" in result.error

    def test_truncated_image(self, validator: ImageValidator, make_image: ImageFactory) -> None:
        data = make_image("PNG")[:20]
        result = validator.validate(data, filename="a.png")
        assert not result.valid

    def test_truncated_image_passes_without_decode_check(
        self, make_image: ImageFactory
    ) -> None:
        validator = ImageValidator(
            max_object_size=1024,
            allowed_extensions=DEFAULT_EXTENSIONS,
            allowed_mime_types=DEFAULT_MIME_TYPES,
            verify_decode=False,
        )
        result = validator.validate(make_image("PNG")[:20], filename="a.png")
        assert result.valid
