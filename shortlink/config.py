"""Configuration management for the slug resolution service.

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
    ttl = settings.cache_default_ttl

**Step 3 — Override in tests**::
    settings = Settings(CACHE_DEFAULT_TTL_MS=2000, SLUG_LENGTH=8)

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- Cache TTL is configured in milliseconds and exposed as a timedelta.

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["Settings", "get_settings"]

import datetime
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "shortlink"
    APP_ENV: str = "development"
    BASE_URL: str = "http://localhost:8000"
    FRONTEND_URL: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://shortlink:shortlink@db:5432/shortlink"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Slug cache
    CACHE_DEFAULT_TTL_MS: int = Field(default=5 * 60 * 1000, gt=0)
    CACHE_MAX_ITEMS: int = Field(default=1000, gt=0)

    # Slug allocation
    SLUG_LENGTH: int = Field(default=8, gt=0)
    SLUG_MAX_ATTEMPTS: int = Field(default=10, gt=0)

    # Redirect hot path bound on store reads
    STORE_TIMEOUT_SECONDS: float = Field(default=0.5, gt=0)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

    @property
    def cache_default_ttl(self) -> datetime.timedelta:
        return datetime.timedelta(milliseconds=self.CACHE_DEFAULT_TTL_MS)


@lru_cache()
def get_settings() -> Settings:
    return Settings()
