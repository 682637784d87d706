"""ObjectRecord: metadata for one unique piece of stored content."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

LOGICAL_ID_PREFIX = "obj"


def as_utc(value: datetime) -> datetime:
    """Return `value` as an aware UTC datetime. Naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def make_logical_id(digest: str, created_at: datetime) -> str:
    """Build the externally exposed identifier from creation time and digest prefix."""
    return f"{LOGICAL_ID_PREFIX}_{created_at:%Y%m%d_%H%M%S}_{digest[:8]}"


class ObjectRecord(BaseModel):
    """Metadata for one distinct content digest.

    Records are immutable values; mutation goes through `touch`, which returns
    a new record. `digest` is the sole dedup key and never changes.
    """

    model_config = ConfigDict(frozen=True)

    digest: str = Field(min_length=64, max_length=64, pattern=r"^[a-f0-9]{64}$")
    logical_id: str
    original_name: str
    mime_type: str
    size_bytes: int = Field(ge=0)
    stored_relative_path: str
    created_at: datetime
    last_accessed_at: datetime
    reference_count: int = Field(default=1, ge=1)

    @field_validator("created_at", "last_accessed_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Stored timestamps are always aware so comparisons never mix kinds
        return as_utc(value)

    @model_validator(mode="after")
    def _check_access_not_before_creation(self) -> ObjectRecord:
        if self.last_accessed_at < self.created_at:
            raise ValueError("last_accessed_at must not precede created_at")
        return self

    def touch(self, now: datetime) -> ObjectRecord:
        """Return a copy recording one more upload of the same content."""
        # Clamp so a skewed clock cannot break last_accessed_at >= created_at
        accessed = max(as_utc(now), self.created_at)
        return self.model_copy(
            update={
                "last_accessed_at": accessed,
                "reference_count": self.reference_count + 1,
            }
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-safe dict (timestamps as ISO-8601 with microseconds)."""
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ObjectRecord:
        return cls.model_validate(data)
