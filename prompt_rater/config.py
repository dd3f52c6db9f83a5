"""
Application configuration using pydantic-settings.
"""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "Prompt Rater"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite+aiosqlite:///./prompt_rater.db"

    # Shared secret the identity gateway presents on /api requests (optional)
    gateway_api_key: Optional[str] = None

    # External generation worker
    worker_secret: Optional[str] = None
    worker_url: str = "http://localhost:3000/api/worker/process"
    worker_timeout_seconds: float = 60.0
    worker_batch_size: int = 10

    # Admin views
    run_history_limit: int = 10

    # CORS
    cors_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
