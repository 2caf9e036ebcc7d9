from __future__ import annotations
"""Configuration settings for the chatvault ingestion service."""

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Model configuration for Pydantic v2
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False
    )

    # Relational store (conversation index + metrics)
    database_path: Path = Path("./data/chatvault.db")

    # Blob store
    blob_backend: Literal["local", "s3"] = "local"
    blob_dir: Path = Path("./data/blobs")
    s3_bucket: str = ""
    s3_prefix: str = ""
    s3_region: str | None = None
    s3_endpoint_url: str | None = None

    # Locator returned to clients is "{public_base_url}/conversation/{id}"
    public_base_url: str = "http://localhost:8000"
    default_model: str = "ChatGPT"

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging
    log_level: str = "INFO"
    log_format: Literal["text", "json"] = "text"

    @property
    def locator_base(self) -> str:
        """Base URL without a trailing slash."""
        return self.public_base_url.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
