"""Configuration settings for ObjectVault."""

from datetime import timedelta

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from object_vault.models.enums import MetadataBackend


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="OBJECT_VAULT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────────────────
    store_root: str = "uploads"
    metadata_backend: MetadataBackend = MetadataBackend.JSON
    metadata_file_path: str = "file-metadata.json"  # json backend
    metadata_database_url: str = "sqlite:///object-vault.db"  # sqlite backend
    database_echo: bool = False

    # ── Validation ───────────────────────────────────────────────────────────
    max_object_size: int = Field(default=5 * 1024 * 1024, gt=0)  # 5MB
    allowed_extensions: set[str] = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
    allowed_mime_types: set[str] = {"image/jpeg", "image/png", "image/gif", "image/webp"}
    # Decode the upload with Pillow after the magic-byte sniff passes
    verify_image_decode: bool = True

    # ── Retention ────────────────────────────────────────────────────────────
    # Objects older than this (measured from creation, not last access) are swept
    retention_hours: float = Field(default=24, gt=0)
    # Period of the scheduler hosting the sweep (the core itself has no timer)
    sweep_interval_seconds: float = Field(default=3600, gt=0)

    log_level: str = "INFO"

    @property
    def retention_window(self) -> timedelta:
        return timedelta(hours=self.retention_hours)


settings = Settings()
