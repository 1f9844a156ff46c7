# app/core/config.py
"""Environment-driven settings for the global report service."""

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    """Runtime configuration read once from the environment."""

    application_id: str
    mongodb_url: str
    mongodb_database: str
    database_url: str
    encryption_secret: str
    parallel_workers: int
    decryption_cache_ttl: float  # seconds
    query_timeout_ms: int


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise RuntimeError(f"Environment variable {name} must be an integer, got {raw!r}") from e
    if value <= 0:
        raise RuntimeError(f"Environment variable {name} must be positive, got {value}")
    return value


@lru_cache
def get_settings() -> Settings:
    """Build settings from the process environment (cached for the process lifetime)."""
    return Settings(
        application_id=os.getenv("APPLICATION_ID", "Unknown"),
        mongodb_url=os.getenv("MONGODB_URL", "mongodb://localhost:27017"),
        mongodb_database=os.getenv("MONGODB_DATABASE", "hotel_audit"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./report_logs.db"),
        encryption_secret=os.getenv("ENCRYPTION_SECRET", ""),
        parallel_workers=_int_env("PARALLEL_WORKERS", 8),
        decryption_cache_ttl=float(_int_env("DECRYPTION_CACHE_TTL", 300)),
        query_timeout_ms=_int_env("QUERY_TIMEOUT_MS", 30000),
    )
