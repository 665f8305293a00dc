"""
Application settings for Pro Logic Scheduler.

Values come from environment variables (or a local .env file):
- DATABASE_URL: SQLAlchemy async URL (SQLite by default, Postgres supported)
- REDIS_URL: arq broker, only used when RECALC_MODE=worker
- RECALC_MODE: "inline" runs CPM inside the request, "worker" enqueues it
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite+aiosqlite:///./prologic.db"
    redis_url: str = "redis://localhost:6379/0"

    debug: bool = False
    log_level: str | None = None
    log_json: bool = False

    recalc_mode: Literal["inline", "worker"] = "inline"

    # 0=Sunday .. 6=Saturday
    default_working_days: list[int] = [1, 2, 3, 4, 5]


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return Settings()
