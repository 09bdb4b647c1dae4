"""Configuration settings for the PeerAssist backend."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Storage
    storage_backend: Literal["supabase", "memory"] = "supabase"
    store_timeout_seconds: float = 5.0  # Deadline for a single store call

    # Supabase
    supabase_url: str | None = None
    supabase_secret_key: str | None = None
    # Legacy key (deprecated)
    supabase_service_role_key: str | None = None

    # JWT
    jwt_secret_key: str  # Required - no default for security
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24  # 24 hours
    # When enabled, the acting user in the path must match the bearer token
    require_session_token: bool = False

    # One-time codes
    otp_length: int = 6
    password_reset_otp_minutes: int = 10
    task_completion_otp_minutes: int = 30

    # Email (SendGrid v3 mail API)
    sendgrid_api_key: str | None = None
    sendgrid_api_url: str = "https://api.sendgrid.com/v3/mail/send"
    email_from: str = "no-reply@peerassist.app"
    email_timeout_seconds: float = 10.0

    # Rate limiting
    rate_limit_enabled: bool = True
    # Peers allowed to set X-Forwarded-For (JSON list in env)
    trusted_proxy_cidrs: list[str] = [
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "127.0.0.0/8",
        "::1/128",
    ]

    # App
    debug: bool = False
    log_level: str = "INFO"
    # CORS: Allowed origins for cross-origin requests
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
