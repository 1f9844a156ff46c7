"""
Test configuration and shared fixtures for the global report test suite.
Provides the in-memory stores, seeded audit data and an API client.
"""

from datetime import datetime
from typing import Any, Dict

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.app import create_app
from app.core.database import Base, get_db, get_report_db
from app.core.dependencies import get_secure_field_resolver
from app.reporting.resolver import SecureFieldResolver
from app.security.cache import TTLCache
from app.security.encryption import EncryptionService
from app.security.parallel import ParallelProcessor

TEST_SECRET = "test-encryption-secret"


# ===== SECURITY =====

@pytest.fixture(scope="session")
def encryption() -> EncryptionService:
    """Key derivation is slow on purpose, so derive once per session"""
    return EncryptionService(TEST_SECRET)


@pytest.fixture
def resolver(encryption) -> SecureFieldResolver:
    return SecureFieldResolver(
        encryption=encryption,
        processor=ParallelProcessor(max_workers=2),
        value_cache=TTLCache(ttl=300),
        list_cache=TTLCache(ttl=300),
    )


# ===== DATABASE SETUP =====

@pytest.fixture
def log_engine():
    """In-memory SQLite engine for the request log"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    from app.logging.models import Log  # noqa: F401
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def log_session_factory(log_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=log_engine)


@pytest.fixture
def report_db():
    """Empty in-memory document store"""
    return mongomock.MongoClient()["hotel_audit_test"]


@pytest.fixture
def seeded(report_db, encryption) -> Dict[str, Any]:
    """Report store seeded with three live Marriott audits, one Hilton audit and one archived audit"""
    return seed_report_data(report_db, encryption)


@pytest.fixture
def client(report_db, seeded, resolver, log_session_factory):
    """FastAPI test client with the document store, resolver and log database overridden"""
    app = create_app(log_session_factory=log_session_factory)

    def override_get_db():
        session = log_session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_report_db] = lambda: report_db
    app.dependency_overrides[get_secure_field_resolver] = lambda: resolver

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return {"X-User-Id": "admin-1", "X-User-Role": "super_admin"}


@pytest.fixture
def viewer_headers() -> Dict[str, str]:
    return {"X-User-Id": "viewer-1", "X-User-Role": "portfolio_manager"}


# ===== SAMPLE DATA =====

def seed_report_data(db, encryption: EncryptionService) -> Dict[str, Any]:
    """Insert a small, fully linked audit dataset and return its ids"""
    ids = {name: ObjectId() for name in (
        "usd", "eur", "revenue", "parity", "pending", "completed", "batch1",
        "marriott", "hilton", "downtown", "airport", "bay",
        "a1", "a2", "a3", "a4", "a5", "dangling_batch",
    )}

    db["Currency"].insert_many([
        {"_id": ids["usd"], "code": "USD", "symbol": "$"},
        {"_id": ids["eur"], "code": "EUR", "symbol": "€"},
    ])
    db["ServiceType"].insert_many([
        {"_id": ids["revenue"], "type": "Revenue Audit"},
        {"_id": ids["parity"], "type": "Parity Audit"},
    ])
    db["AuditStatus"].insert_many([
        {"_id": ids["pending"], "status": "Pending"},
        {"_id": ids["completed"], "status": "Completed"},
    ])
    db["AuditBatch"].insert_one({"_id": ids["batch1"], "batch_no": "B-001"})
    db["Portfolio"].insert_many([
        {
            "_id": ids["marriott"],
            "name": "Marriott Group",
            "contact_email": "ops@marriott.example",
            "service_type_id": ids["revenue"],
        },
        {
            "_id": ids["hilton"],
            "name": "Hilton Holdings",
            "contact_email": "audits@hilton.example",
            "service_type_id": ids["parity"],
        },
    ])
    db["Property"].insert_many([
        {
            "_id": ids["downtown"],
            "name": "Marriott Downtown",
            "portfolio_id": ids["marriott"],
            "currency_id": ids["usd"],
            "is_active": True,
            "next_due_date": datetime(2024, 6, 1),
        },
        {
            "_id": ids["airport"],
            "name": "Marriott Airport",
            "portfolio_id": ids["marriott"],
            "currency_id": ids["usd"],
            "is_active": True,
            "next_due_date": datetime(2024, 7, 1),
        },
        {
            "_id": ids["bay"],
            "name": "Hilton Bay",
            "portfolio_id": ids["hilton"],
            "currency_id": ids["eur"],
            "is_active": False,
            "next_due_date": None,
        },
    ])
    db["PropertyCredentials"].insert_many([
        {
            "property_id": ids["downtown"],
            "expedia_id": "EXP-100",
            "expedia_username": "downtown_exp",
            "expedia_password": encryption.encrypt("abc-expedia"),
            "agoda_id": "AG-200",
            "agoda_username": "downtown_agoda",
            "agoda_password": encryption.encrypt("agoda-secret"),
        },
        {
            "property_id": ids["airport"],
            "booking_id": "BK-300",
            "booking_username": "airport_booking",
            "booking_password": encryption.encrypt("abcdef"),
        },
        {
            "property_id": ids["bay"],
            "expedia_id": "EXP-400",
            "expedia_username": "bay_exp",
            "expedia_password": "not-a-valid-ciphertext",
        },
    ])
    db["Audit"].insert_many([
        {
            "_id": ids["a1"],
            "property_id": ids["downtown"],
            "audit_status_id": ids["pending"],
            "batch_id": ids["batch1"],
            "type_of_ota": ["expedia"],
            "billing_type": "VCC",
            "start_date": datetime(2024, 1, 10),
            "end_date": datetime(2024, 1, 31),
            "amount_collectable": 1200.5,
            "amount_confirmed": 1000,
            "is_archived": False,
            "created_at": datetime(2024, 1, 10, 9, 0),
        },
        {
            "_id": ids["a2"],
            "property_id": ids["downtown"],
            "audit_status_id": ids["completed"],
            "type_of_ota": ["expedia", "agoda"],
            "billing_type": "DB",
            "start_date": datetime(2024, 3, 5),
            "end_date": datetime(2024, 3, 31),
            "amount_collectable": 800,
            "amount_confirmed": 800,
            "is_archived": False,
            "created_at": datetime(2024, 3, 5, 9, 0),
        },
        {
            "_id": ids["a3"],
            "property_id": ids["airport"],
            "audit_status_id": ids["pending"],
            "batch_id": ids["dangling_batch"],
            "type_of_ota": ["booking"],
            "billing_type": "EBS",
            "start_date": datetime(2024, 2, 20),
            "end_date": datetime(2024, 2, 28),
            "amount_collectable": 300,
            "amount_confirmed": None,
            "is_archived": False,
            "created_at": datetime(2024, 2, 20, 9, 0),
        },
        {
            "_id": ids["a4"],
            "property_id": ids["bay"],
            "audit_status_id": ids["completed"],
            "batch_id": ids["batch1"],
            "type_of_ota": ["expedia"],
            "billing_type": "VCC",
            "start_date": datetime(2024, 4, 1),
            "end_date": datetime(2024, 4, 30),
            "amount_collectable": 50,
            "amount_confirmed": 25,
            "is_archived": False,
            "created_at": datetime(2024, 4, 1, 9, 0),
        },
        {
            "_id": ids["a5"],
            "property_id": ids["airport"],
            "audit_status_id": ids["completed"],
            "type_of_ota": "booking",
            "billing_type": "DB",
            "start_date": datetime(2024, 5, 1),
            "end_date": datetime(2024, 5, 31),
            "amount_collectable": 10,
            "amount_confirmed": 10,
            "is_archived": True,
            "created_at": datetime(2024, 5, 1, 9, 0),
        },
    ])
    return ids
