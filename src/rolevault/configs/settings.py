from __future__ import annotations

from typing import Any, List

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

PROJECT_ROOT = Path(__file__).parent.parent.parent.parent


class Settings(BaseSettings):
    """
    Central configuration.

    - Values loaded from `.env` and the process environment
    - Comma-separated lists for multi-value settings like CORS_ORIGINS
    """

    # ----------------------------
    # Service
    # ----------------------------
    SERVICE_NAME: str = "rolevault"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # ----------------------------
    # Mongo
    # ----------------------------
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "rolevault"

    # ----------------------------
    # Redis
    # ----------------------------
    redis_url: str = "redis://localhost:6379/0"
    redis_notification_channel: str = "rv:notifications"

    # ----------------------------
    # CORS
    # ----------------------------
    # store as raw string list from env; we will normalize in code
    CORS_ORIGINS: Any = Field(default_factory=lambda: ["http://localhost:3000"])

    # ----------------------------
    # JWT
    # ----------------------------
    jwt_alg: str = "HS256"
    jwt_secret: str = "change-me"
    jwt_audience: str | None = None
    jwt_issuer: str | None = None
    jwt_expire_minutes: int = 60
    jwt_pending_expire_minutes: int = 5  # second-factor challenge window

    # ----------------------------
    # Accounts
    # ----------------------------
    bcrypt_rounds: int = 12
    totp_issuer: str = "RoleVault"
    registration_allowed_roles: List[str] = Field(default_factory=lambda: ["viewer", "contributor"])
    # first admin, created at startup when no admin exists yet
    bootstrap_admin_email: str | None = None
    bootstrap_admin_password: str | None = None
    bootstrap_admin_name: str = "Admin User"

    # ----------------------------
    # API keys
    # ----------------------------
    api_key_ttl_days: int = 365
    api_key_expiry_warning_days: int = 7
    api_key_check_interval_seconds: int = 3600

    # ----------------------------
    # Uploads
    # ----------------------------
    upload_dir: str = str(PROJECT_ROOT / "uploads")
    max_file_size: int = 10 * 1024 * 1024
    allowed_upload_extensions: List[str] = Field(
        default_factory=lambda: [
            "jpeg", "jpg", "png", "gif", "pdf", "doc", "docx", "txt", "csv", "xlsx", "zip",
        ]
    )

    # Pydantic settings config (v2 style)
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
