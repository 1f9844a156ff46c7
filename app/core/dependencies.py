# app/core/dependencies.py
"""FastAPI dependencies for the global report service"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from pymongo.database import Database
from sqlalchemy.orm import Session

from app.auth.authorization import CurrentUser, ReportAuthorizer, SuperAdminAuthorizer, get_current_user
from app.core.config import get_settings
from app.core.database import get_db, get_report_db
from app.query.engine import MongoQueryExecutor
from app.reporting.dao import GlobalReportDAO
from app.reporting.resolver import SecureFieldResolver
from app.reporting.service import GlobalReportService
from app.security.cache import TTLCache
from app.security.encryption import EncryptionService
from app.security.parallel import ParallelProcessor

# Core database dependencies
SessionDep = Annotated[Session, Depends(get_db)]
ReportDBDep = Annotated[Database, Depends(get_report_db)]
UserDep = Annotated[CurrentUser, Depends(get_current_user)]


# Process-wide: the derived key and both decryption caches outlive requests
@lru_cache
def get_secure_field_resolver() -> SecureFieldResolver:
    settings = get_settings()
    if not settings.encryption_secret:
        raise RuntimeError("ENCRYPTION_SECRET must be set to decrypt OTA credentials")
    return SecureFieldResolver(
        encryption=EncryptionService(settings.encryption_secret),
        processor=ParallelProcessor(max_workers=settings.parallel_workers),
        value_cache=TTLCache(ttl=settings.decryption_cache_ttl),
        list_cache=TTLCache(ttl=settings.decryption_cache_ttl),
    )


def get_report_authorizer() -> ReportAuthorizer:
    return SuperAdminAuthorizer()


def get_global_report_service(
    db: ReportDBDep,
    resolver: SecureFieldResolver = Depends(get_secure_field_resolver),
    authorizer: ReportAuthorizer = Depends(get_report_authorizer),
) -> GlobalReportService:
    """Get the global report service bound to the report database"""
    return GlobalReportService(
        executor=MongoQueryExecutor(db, timeout_ms=get_settings().query_timeout_ms),
        dao=GlobalReportDAO(db),
        resolver=resolver,
        authorizer=authorizer,
    )


ReportServiceDep = Annotated[GlobalReportService, Depends(get_global_report_service)]
