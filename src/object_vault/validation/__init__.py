"""Upload validation for ObjectVault.

Validators check uploads before the storage engine touches any state.
"""

from object_vault.validation.base import ValidationResult, Validator
from object_vault.validation.image import ImageValidator

__all__ = [
    "ImageValidator",
    "ValidationResult",
    "Validator",
]
