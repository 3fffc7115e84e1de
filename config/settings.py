"""Configuration management using pydantic-settings."""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Cache settings loaded from environment variables."""

    # Memory store
    cache_max_entries: int = 500
    cache_default_ttl_ms: int = 0          # 0 = no expiry
    cache_clone_before_set: bool = True

    # Refresh-ahead: hits with less than this many ms left are recomputed
    # in the background. Unset disables refresh-ahead.
    cache_refresh_threshold_ms: Optional[int] = None

    # Number of memory-backed tiers in the default cache (1 = no tiering)
    cache_tiers: int = 1

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
