"""Application settings loaded from the environment."""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration; every field can be overridden via env vars."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_env: str = "local"
    log_level: str = "INFO"

    database_url: str = "sqlite+aiosqlite:///./minigram.db"

    # Tokens are issued by the external identity provider; we only verify them.
    session_token_secret: str = "dev-session-secret-change-me-0123456789"
    session_token_algorithm: str = "HS256"
    session_token_issuer: str | None = None
    session_token_ttl_minutes: int = 60
    session_cookie_name: str = "__session"

    minio_endpoint: str = "localhost:9000"
    minio_access_key: str = "minioadmin"
    minio_secret_key: str = "minioadmin"
    minio_secure: bool = False
    minio_bucket: str = "uploads"
    media_public_base_url: str = "http://localhost:9000"

    upload_max_bytes: int = 5 * 1024 * 1024

    redis_url: str = "redis://localhost:6379/0"
    rate_limit_requests: int = 120
    rate_limit_window_seconds: int = 60
    rate_limit_trusted_proxies: list[str] = []
    rate_limit_ip_headers: list[str] = ["x-forwarded-for", "x-real-ip"]

    cors_origins: list[str] = ["http://localhost:3000"]


settings = Settings()
