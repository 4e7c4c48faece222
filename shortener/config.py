"""Configuration management for the short-link service.

Every tunable of the service lives on a single Pydantic ``BaseSettings``
model, read from the environment (and an optional ``.env`` file) once and
then cached.

Flow Diagram — get_settings()
=============================
::
    ┌─────────────┐
    │  Call get_  │
    │  settings() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check cache │
    │ (lru_cache) │
    └──────┬──────┘
    HIT?   │
    ┌──────┴─────┐
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
    from shortener.config import get_settings

**Step 2 — Read values**::
    settings = get_settings()
    ttl = settings.CACHE_TTL_SECONDS

Key Behaviours
===============
- Settings are cached after first access.
- Environment variables override defaults (names are case sensitive).
- ``TRUST_FORWARDED_FOR`` assumes the service runs behind a proxy that
  overwrites ``X-Forwarded-For``; disable it when clients connect directly.

Classes:
    Settings:  Pydantic model for all configuration values.
"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "url-shortener"
    APP_ENV: str = "development"
    APP_VERSION: str = "1.0.0"
    BASE_URL: str = "http://localhost:8080"
    LOG_LEVEL: str = "INFO"

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://shortener:shortener@db:5432/shortener"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"
    CACHE_TTL_SECONDS: int = 3600

    # Short code issuance
    SHORT_CODE_LENGTH: int = 8
    MAX_CUSTOM_ALIAS_LENGTH: int = 16
    CODE_GENERATION_RETRIES: int = 5

    # Rate limiting (fixed, epoch-aligned windows)
    RATE_LIMIT_RPM: int = 60
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    TRUST_FORWARDED_FOR: bool = True

    # API keys
    DEFAULT_API_KEY_RPM: int = 60

    # Fire-and-forget work (cache fills, last-used updates, click counts)
    BACKGROUND_TASK_TIMEOUT_SECONDS: float = 2.0
    CLICK_TASK_TIMEOUT_SECONDS: float = 5.0

    # Expired link sweep
    CLEANUP_INTERVAL_SECONDS: int = 600
    CLEANUP_TIMEOUT_SECONDS: float = 30.0

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
