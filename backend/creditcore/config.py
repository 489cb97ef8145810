"""
Application configuration loaded from environment variables.
"""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # MongoDB
    mongo_uri: str = "mongodb://mongodb:27017"
    database_name: str = "creditcore_db"

    # Redis (price snapshot cache)
    redis_host: str = "redis"
    redis_port: int = 6379

    # CoinGecko
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    coingecko_api_key: str | None = None

    # Price snapshot fan-out
    price_cache_ttl_seconds: int = 60
    price_lookup_timeout_seconds: float = 5.0
    price_lookup_concurrency: int = 8

    # Alerts
    percentage_alert_window_hours: int = 24

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
