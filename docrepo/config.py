"""
docrepo configuration: all environment variables in one place.

Read from environment at runtime. Never hardcode credentials.
"""

from __future__ import annotations

import os


def _optional_float(name: str) -> float | None:
    raw = os.environ.get(name, "").strip()
    return float(raw) if raw else None


class Settings:
    """Persistence settings from environment variables."""

    # Document store
    MONGODB_URL: str = os.environ.get("MONGODB_URL", "")
    MONGODB_DATABASE: str = os.environ.get("MONGODB_DATABASE", "docrepo")
    MONGODB_MIN_POOL_SIZE: int = int(os.environ.get("MONGODB_MIN_POOL_SIZE", "2"))
    MONGODB_MAX_POOL_SIZE: int = int(os.environ.get("MONGODB_MAX_POOL_SIZE", "20"))
    MONGODB_TIMEOUT_MS: int = int(os.environ.get("MONGODB_TIMEOUT_MS", "60000"))

    # Schema
    SCHEMA_VERSION: str = os.environ.get("SCHEMA_VERSION", "1.0.0")

    # Migrations (None = run until finished or failed)
    MIGRATION_TIMEOUT_SECONDS: float | None = _optional_float("MIGRATION_TIMEOUT_SECONDS")

    # Application
    ENVIRONMENT: str = os.environ.get("ENVIRONMENT", "development")


# Singleton instance
settings = Settings()
