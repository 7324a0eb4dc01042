"""Configuration management for the shortlink service.

This module provides centralized configuration management using Pydantic BaseSettings
with environment variable support and caching for performance.

Flow Diagram — get_settings()
=============================
::
    ┌─────────────┐
    │  Call get_  │
    │  settings() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check cache  │
    │ (lru_cache)  │
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Settings│  │ cached  │
│ instance│  │ value   │
└─────────┘  └─────────┘

How to Use
===========
**Step 1 — Import**::
    from shortlink.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    db_url = settings.DATABASE_URL

**Step 3 — Override in tests**::
    settings = Settings(DATABASE_URL="sqlite+aiosqlite:///./test.db")

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- Worker pool and sweeper timings are plain settings, read once by the
  composition root.

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "shortlink"
    APP_ENV: str = "development"
    BASE_URL: str = "http://localhost:8080"
    LOG_LEVEL: str = "INFO"

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://shortlink:shortlink@db:5432/shortlink"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"
    REDIS_SOCKET_TIMEOUT_SECONDS: float = 0.5

    # Link rules
    URL_MAX_LENGTH: int = 2048
    URL_CACHE_TTL_SECONDS: int = 3600
    ENABLE_DUPLICATE_DETECTION: bool = True
    MAX_EXPIRATION_DAYS: int = 365
    ID_MAX_PROBES: int = 10_000
    CREATE_CONFLICT_RETRIES: int = 3

    # Analytics
    ANALYTICS_CACHE_TTL_SECONDS: int = 1800
    ANALYTICS_DEFAULT_DAYS: int = 7

    # Click ingestion worker pool
    CLICK_TRACKING_CORE_WORKERS: int = 5
    CLICK_TRACKING_MAX_WORKERS: int = 10
    CLICK_TRACKING_QUEUE_CAPACITY: int = 100
    CLICK_TRACKING_KEEP_ALIVE_SECONDS: float = 60.0
    CLICK_TRACKING_SHUTDOWN_GRACE_SECONDS: float = 60.0

    # Expiration sweeper
    EXPIRATION_SWEEP_INTERVAL_SECONDS: float = 3600.0

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
