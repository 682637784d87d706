"""Utility modules for ObjectVault."""

from object_vault.utils.medium import MIME_EXTENSIONS, extension_of, sniff_mime_type

__all__ = [
    "MIME_EXTENSIONS",
    "extension_of",
    "sniff_mime_type",
]
