from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Secrets(BaseSettings):
    """Secrets configuration, loaded from the environment or a secrets management service."""

    model_config = SettingsConfigDict(
        env_prefix="VIDCORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    jwt_secret: str = Field(default="change-me", description="Secret used to verify bearer tokens.")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "Secrets":
        return cls()


class Settings(BaseSettings):
    """Centralised runtime configuration for the vidcore service."""

    model_config = SettingsConfigDict(
        env_prefix="VIDCORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "vidcore API"
    environment: str = Field(default="development", description="Deployment environment label.")
    version: str = Field(default="0.1.0", description="API version for metadata and OpenAPI.")
    log_level: str = Field(default="info")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./vidcore.db",
        description="SQLAlchemy compatible DSN.",
    )

    storage_backend: Literal["local"] = Field(default="local", description="Active storage implementation.")
    storage_root: Path = Field(default_factory=lambda: Path("storage"), description="Root for stored media and thumbnails.")

    max_upload_size_bytes: int = Field(default=500 * 1024 * 1024, description="Hard limit for uploads.")

    ffprobe_binary: str = Field(default="ffprobe")
    ffmpeg_binary: str = Field(default="ffmpeg")
    probe_timeout_s: float = Field(default=30.0, gt=0, description="Upper bound for a single ffprobe run.")
    extract_timeout_s: float = Field(default=30.0, gt=0, description="Upper bound for one thumbnail extraction, shared by its ffmpeg passes.")
    thumbnail_offset_s: float = Field(default=1.0, ge=0, description="Seek position of the representative frame.")
    thumbnail_width: int = Field(default=320, ge=16, description="Thumbnail width in pixels; height keeps aspect.")

    jwt_algorithm: str = Field(default="HS256", description="Algorithm used for JWT tokens.")
    jwt_issuer: Optional[str] = None
    jwt_audience: Optional[str] = None

    secrets: Secrets = Field(default_factory=Secrets, description="Holds sensitive configuration.")

    @property
    def environment_lower(self) -> str:
        return self.environment.lower()


@lru_cache()
def get_settings() -> Settings:
    load_dotenv(".env", override=False)

    _ENV_ALIAS_MAP = {
        "VIDCORE_ENV": "VIDCORE_ENVIRONMENT",
        "VIDCORE_DB_URL": "VIDCORE_DATABASE_URL",
    }

    for source, target in _ENV_ALIAS_MAP.items():
        value = os.getenv(source)
        if value:
            os.environ[target] = value

    settings = Settings()
    secrets = Secrets.from_settings(settings)

    if settings.environment_lower == "production" and secrets.jwt_secret == "change-me":
        raise ValueError("Production environment must have a non-default JWT secret.")

    settings.secrets = secrets
    return settings


__all__ = ["Settings", "Secrets", "get_settings"]
