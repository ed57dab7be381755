"""
Configuration and settings for the Fotota service.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service.

    Field names double as environment variable names (case-insensitive).
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")

    # Tables (the platform's Postgres, or any SQLAlchemy URL)
    database_url: Optional[str] = Field(default=None)

    # Hosted auth (Supabase GoTrue)
    supabase_url: Optional[str] = Field(default=None)
    supabase_anon_key: Optional[str] = Field(default=None)
    admin_emails: str = Field(default="admin@st.id")

    # S3-compatible storage
    storage_endpoint: Optional[str] = Field(default=None)
    storage_region: Optional[str] = Field(default=None)
    storage_access_key_id: Optional[str] = Field(default=None)
    storage_secret_access_key: Optional[str] = Field(default=None)
    photo_bucket: str = Field(default="FOTO")
    selfie_bucket: str = Field(default="user-selfies")
    signed_url_ttl_seconds: int = Field(default=3600, ge=60, le=604800)

    # Match requests for the external matcher (Redis)
    redis_url: Optional[str] = Field(default=None)
    match_queue_key: str = Field(default="fotota:match-requests")

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "fotota_use_in_memory_backends", "use_in_memory_backends"
        ),
    )

    @property
    def admin_email_set(self) -> set[str]:
        return {
            email.strip().lower()
            for email in self.admin_emails.split(",")
            if email.strip()
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
