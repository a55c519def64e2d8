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
        env_prefix="REELHOUSE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    jwt_secret: str = Field(default="change-me", description="Signing secret for bearer token validation.")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "Secrets":
        return cls()


class Settings(BaseSettings):
    """Centralised runtime configuration for the Reelhouse API."""

    model_config = SettingsConfigDict(
        env_prefix="REELHOUSE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Reelhouse API"
    environment: str = Field(default="development", description="Deployment environment label.")
    version: str = Field(default="0.1.0", description="API version for metadata and OpenAPI.")
    log_level: str = Field(default="info")
    port: int = Field(default=8091, description="Port the API is served on.")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./reelhouse.db",
        description="SQLAlchemy compatible DSN for the video metadata store.",
    )

    assets_root: Path = Field(
        default_factory=lambda: Path("assets"),
        description="Local directory where uploads are staged while they are processed.",
    )
    storage_backend: Literal["local", "s3"] = Field(default="local", description="Active storage implementation.")
    local_storage_base_path: Path | None = Field(
        default=None,
        description="Base path for the local object store (defaults to <assets_root>/objects).",
    )

    s3_bucket: Optional[str] = None
    s3_region: Optional[str] = None
    s3_endpoint_url: Optional[str] = None
    s3_access_key_id: Optional[str] = None
    s3_secret_access_key: Optional[str] = None

    max_video_upload_bytes: int = Field(default=1 << 30, description="Hard ceiling for video uploads (1 GiB).")
    allowed_video_type: str = Field(default="video/mp4", description="The only accepted video media type.")
    presign_expires_s: int = Field(default=3600, ge=1, description="Validity of signed video URLs.")

    ffprobe_binary: str = Field(default="ffprobe")
    ffmpeg_binary: str = Field(default="ffmpeg")
    media_tool_timeout_s: float = Field(
        default=600.0,
        gt=0,
        description="Deadline for each ffprobe/ffmpeg invocation.",
    )

    jwt_algorithm: str = Field(default="HS256", description="Algorithm used for JWT tokens.")
    jwt_issuer: Optional[str] = None
    jwt_audience: Optional[str] = None

    secrets: Secrets = Field(default_factory=Secrets, description="Holds sensitive configuration.")

    @property
    def environment_lower(self) -> str:
        return self.environment.lower()

    @property
    def object_storage_path(self) -> Path:
        return Path(self.local_storage_base_path or Path(self.assets_root) / "objects")


@lru_cache()
def get_settings() -> Settings:
    load_dotenv(".env", override=False)

    _ENV_ALIAS_MAP = {
        "REELHOUSE_ENV": "REELHOUSE_ENVIRONMENT",
        "REELHOUSE_DB_URL": "REELHOUSE_DATABASE_URL",
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
