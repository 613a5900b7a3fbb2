"""Application configuration and settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TABLEHOST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = "Tablehost Floor Engine"
    debug: bool = False
    api_prefix: str = "/api"
    log_level: str = "INFO"

    # Storage
    storage_backend: str = "memory"  # memory | sql
    database_url: str = "sqlite+aiosqlite:///./tablehost.db"

    # Turn times (minutes)
    avg_turn_minutes: float = 90.0
    turn_time_sample_size: int = 50

    # A confirmed reservation shows the table as RESERVED from this many
    # minutes before its time until the grace window after it runs out.
    reserved_lookahead_minutes: int = 120
    reservation_grace_minutes: int = 15

    # Concurrency
    lock_timeout_seconds: float = 3.0
    max_assignment_attempts: int = 3

    # Waitlist
    waitlist_concurrent_turnovers: int = 2
    promotion_enabled: bool = True


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
