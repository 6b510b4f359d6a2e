"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "Link Tracker"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 3003

    # Storage
    storage_backend: Literal["memory", "sql"] = "sql"
    database_url: str = "sqlite+aiosqlite:///./data/links.db"
    auto_create_tables: bool = True

    # Redis link cache (disabled when empty)
    redis_url: str = ""
    link_cache_ttl: int = 3600

    # Links
    public_base_url: str = ""
    short_code_max_attempts: int = 3

    # Security
    cors_origins: list[str] = ["*"]
    hsts_max_age: int = 15552000  # 180 days, sent only when not in debug

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_default: str = "100 per 15 minutes"
    rate_limit_redirect: str = "1000/minute"
    rate_limit_create_link: str = "60/hour"
    rate_limit_api: str = "100/minute"

    # GeoIP
    geoip_enabled: bool = True
    geoip_database_path: str = ""
    geoip_timeout: float = 1.5

    # Observability
    sentry_dsn: str = ""
    sentry_traces_sample_rate: float = 0.1
    otlp_endpoint: str = ""


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
