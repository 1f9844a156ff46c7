# app/core/database.py
"""Database configuration: SQL store for request logs, document store for report data."""

from functools import lru_cache

from pymongo import MongoClient
from pymongo.database import Database
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from app.core.config import get_settings

# ===== REQUEST LOG DATABASE =====
# Stores API request/response logs written by the logging middleware.
DATABASE_URL = get_settings().database_url

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


# ===== REPORT DOCUMENT STORE =====
# Audits, properties, portfolios, credentials, etc.


@lru_cache
def get_mongo_client() -> MongoClient:
    """Process-wide client; pymongo pools connections internally."""
    settings = get_settings()
    return MongoClient(settings.mongodb_url, tz_aware=False)


# ===== SESSION GENERATORS =====


def get_db():
    """Get request log database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_report_db() -> Database:
    """Get the report document database."""
    return get_mongo_client()[get_settings().mongodb_database]


def init_db():
    """Create the request log tables if they do not exist."""
    from app.logging.models import Log  # noqa: F401

    Base.metadata.create_all(bind=engine)
