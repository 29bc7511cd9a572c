"""
Configuration and settings for the backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # Database (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Refresh token store (Redis)
    redis_url: Optional[str] = Field(default=None)
    redis_refresh_token_prefix: str = Field(default="cryptodca:refresh:")

    # JWT
    jwt_secret_access_token: str = Field(
        default="dev-access-token-secret-change-me-in-production"
    )
    jwt_secret_refresh_token: str = Field(
        default="dev-refresh-token-secret-change-me-in-production"
    )
    jwt_secret_reset_password_token: str = Field(
        default="dev-reset-password-token-secret-change-me-in-production"
    )
    jwt_algorithm: str = Field(default="HS256")
    access_token_expires_in: int = Field(default=60 * 60)
    refresh_token_expires_in: int = Field(default=7 * 24 * 60 * 60)
    refresh_token_store_grace_seconds: int = Field(default=24 * 60 * 60, ge=1)
    reset_password_token_expires_in: int = Field(default=60 * 60)

    # Password hashing
    bcrypt_rounds: int = Field(default=10, ge=4, le=31)

    # Gateway / authorization
    api_gateway_key: Optional[str] = Field(default=None)
    require_bearer_on_user_routes: bool = Field(default=False)
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Error reporting (Sentry)
    sentry_dsn: Optional[str] = Field(default=None)
    sentry_traces_sample_rate: float = Field(default=1.0)

    # Password reset mail
    reset_password_url: str = Field(
        default="https://crypto-stdev-cra.vercel.app/auth/reset"
    )
    mail_from: str = Field(default="no-reply@cryptodca.app")

    # SMTP delivery; reset mail is only logged when smtp_host is unset
    smtp_host: Optional[str] = Field(default=None)
    smtp_port: int = Field(default=587)
    smtp_username: Optional[str] = Field(default=None)
    smtp_password: Optional[str] = Field(default=None)
    smtp_use_tls: bool = Field(default=True)
    smtp_timeout_seconds: float = Field(default=10.0)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
