"""
Configuration and settings for the admin console backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CONSOLE_",
        extra="ignore",
    )

    api_prefix: str = Field(default="/api")

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)
    dev_admin_email: Optional[str] = Field(default=None)
    dev_admin_password: Optional[str] = Field(default=None)

    # Document store
    store_backend: Literal["memory", "sql", "firestore"] = Field(default="memory")
    database_url: Optional[str] = Field(default=None)

    # Firebase (Firestore + Identity Toolkit)
    firebase_project_id: Optional[str] = Field(default=None)
    firebase_api_key: Optional[str] = Field(default=None)
    firebase_credentials_path: Optional[str] = Field(default=None)

    # S3-compatible blob storage
    storage_bucket: Optional[str] = Field(default=None)
    storage_region: Optional[str] = Field(default=None)
    storage_endpoint: Optional[str] = Field(default=None)
    storage_public_base_url: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)

    # Outbound mail
    smtp_host: Optional[str] = Field(default=None)
    smtp_port: int = Field(default=587)
    smtp_user: Optional[str] = Field(default=None)
    smtp_password: Optional[str] = Field(default=None)
    smtp_from: Optional[str] = Field(default=None)
    smtp_from_name: str = Field(default="筋肉ショップ")

    # Sessions
    session_cookie_name: str = Field(default="console_session")
    session_ttl_seconds: int = Field(default=8 * 3600)
    session_cookie_secure: bool = Field(default=False)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
