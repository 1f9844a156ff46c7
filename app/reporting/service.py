# app/reporting/service.py
"""Global report service: authorize, validate, build, execute and resolve."""

import logging
import math
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from starlette.concurrency import run_in_threadpool

from app.auth.authorization import CurrentUser, ReportAuthorizer, SuperAdminAuthorizer, ensure_authorized
from app.query.builder import PipelineBuilder
from app.query.engine import QueryExecutor
from app.reporting.column_registry import OTA_PROVIDERS, REPORT_CATALOG, ColumnCatalog
from app.reporting.dao import GlobalReportDAO
from app.reporting.exceptions import ReportValidationError
from app.reporting.resolver import PASSWORD_LIST_KEY, SecureFieldResolver
from app.reporting.schemas import (
    ColumnMetadata,
    ColumnsMetadataResponse,
    GlobalReportResponse,
    NamedItem,
    NamedItemsResponse,
    OtaIdItem,
    OtaIdsResponse,
    OtaPasswordsResponse,
    OtaUsernameItem,
    OtaUsernamesResponse,
    PaginationMetadata,
    ReportExportRequest,
    ReportQuery,
    ReportRow,
    StringListResponse,
)
from app.reporting.validator import ReportRequestValidator

logger = logging.getLogger(__name__)


class ExportTable:
    """Labelled export rows, ready for a tabular writer."""

    def __init__(self, labels: List[str], records: List[Dict[str, Any]]):
        self.labels = labels
        self.records = records

    def __len__(self) -> int:
        return len(self.records)


class GlobalReportService:
    """Global audit report across all portfolios and properties."""

    def __init__(
        self,
        executor: QueryExecutor,
        dao: GlobalReportDAO,
        resolver: SecureFieldResolver,
        authorizer: Optional[ReportAuthorizer] = None,
        catalog: ColumnCatalog = REPORT_CATALOG,
    ):
        self.executor = executor
        self.dao = dao
        self.resolver = resolver
        self.authorizer = authorizer or SuperAdminAuthorizer()
        self.catalog = catalog
        self.validator = ReportRequestValidator(catalog)
        self.builder = PipelineBuilder(catalog)

    # ===== REPORT =====

    async def get_report(self, query: ReportQuery, user: CurrentUser) -> GlobalReportResponse:
        ensure_authorized(self.authorizer, user, "access global reports")
        self.validator.validate(query.filters, query.sort)

        pipeline = self.builder.build(query)
        result = await run_in_threadpool(self.executor.run_paginated, pipeline)
        rows = await run_in_threadpool(self.resolver.resolve_rows, result.rows)

        logger.info(
            "Global report page %d: %d rows of %d (filters=%d, sort=%d)",
            query.page, len(rows), result.total, len(query.filters), len(query.sort),
        )
        return GlobalReportResponse(
            data=rows,
            metadata=PaginationMetadata(
                total_documents=result.total,
                current_page=query.page,
                total_pages=math.ceil(result.total / query.limit),
                page_size=query.limit,
            ),
        )

    async def export_report(self, request: ReportExportRequest, user: CurrentUser) -> ExportTable:
        ensure_authorized(self.authorizer, user, "export global reports")
        self.validator.validate(request.filters, request.sort)
        if request.columns:
            self.validator.validate_columns(request.columns)

        keys = request.columns or [col.key for col in self.catalog.visible_columns()]
        pipeline = self.builder.build_for_export(request, keys)
        docs = await run_in_threadpool(self.executor.run_export, pipeline)
        rows = await run_in_threadpool(self.resolver.resolve_rows, docs)

        logger.info("Exporting %d global report rows as %s", len(rows), request.format.value)
        return self._to_export_table(rows, keys)

    def get_columns_metadata(self, user: CurrentUser) -> ColumnsMetadataResponse:
        """Column metadata for building filter controls. Filter-only columns are left out."""
        ensure_authorized(self.authorizer, user, "access global report columns")
        columns = [
            ColumnMetadata(
                key=col.key,
                label=col.label,
                data_type=col.data_type,
                filterable=col.filterable,
                sortable=col.sortable,
                allowed_operators=col.ordered_operators(),
                enum_values=list(col.enum_values) if col.enum_values else None,
            )
            for col in self.catalog.visible_columns()
        ]
        return ColumnsMetadataResponse(columns=columns)

    # ===== LOOKUP LISTS =====

    async def get_ota_ids(self, user: CurrentUser) -> OtaIdsResponse:
        ensure_authorized(self.authorizer, user, "access OTA IDs")
        items = await run_in_threadpool(self.dao.get_ota_ids)
        return OtaIdsResponse(data=[OtaIdItem(**item) for item in items])

    async def get_ota_usernames(self, user: CurrentUser) -> OtaUsernamesResponse:
        ensure_authorized(self.authorizer, user, "access OTA usernames")
        items = await run_in_threadpool(self.dao.get_ota_usernames)
        return OtaUsernamesResponse(data=[OtaUsernameItem(**item) for item in items])

    async def get_ota_passwords(self, user: CurrentUser) -> OtaPasswordsResponse:
        ensure_authorized(self.authorizer, user, "access OTA passwords")
        items = await run_in_threadpool(
            self.resolver.decrypt_password_list, self.dao.get_encrypted_passwords, PASSWORD_LIST_KEY
        )
        return OtaPasswordsResponse(data=items)

    async def get_provider_ids(self, provider: str, user: CurrentUser) -> StringListResponse:
        ensure_authorized(self.authorizer, user, f"access {provider} IDs")
        _check_provider(provider)
        values = await run_in_threadpool(self.dao.get_provider_values, provider, "id")
        return StringListResponse(data=values)

    async def get_provider_usernames(self, provider: str, user: CurrentUser) -> StringListResponse:
        ensure_authorized(self.authorizer, user, f"access {provider} usernames")
        _check_provider(provider)
        values = await run_in_threadpool(self.dao.get_provider_values, provider, "username")
        return StringListResponse(data=values)

    async def get_provider_passwords(self, provider: str, user: CurrentUser) -> StringListResponse:
        ensure_authorized(self.authorizer, user, f"access {provider} passwords")
        _check_provider(provider)

        def load() -> List[Dict[str, str]]:
            return [item for item in self.dao.get_encrypted_passwords() if item["ota_type"] == provider]

        items = await run_in_threadpool(self.resolver.decrypt_password_list, load, f"{provider}-passwords")
        return StringListResponse(data=sorted({item.password for item in items}))

    async def get_portfolio_contact_emails(self, user: CurrentUser) -> StringListResponse:
        ensure_authorized(self.authorizer, user, "access portfolio contact emails")
        emails = await run_in_threadpool(self.dao.get_portfolio_contact_emails)
        return StringListResponse(data=emails)

    async def get_portfolios(self, user: CurrentUser) -> NamedItemsResponse:
        ensure_authorized(self.authorizer, user, "access portfolios")
        items = await run_in_threadpool(self.dao.get_portfolios)
        return NamedItemsResponse(data=[NamedItem(**item) for item in items])

    async def get_properties(self, user: CurrentUser) -> NamedItemsResponse:
        ensure_authorized(self.authorizer, user, "access properties")
        items = await run_in_threadpool(self.dao.get_properties)
        return NamedItemsResponse(data=[NamedItem(**item) for item in items])

    def clear_cache(self, user: CurrentUser) -> None:
        ensure_authorized(self.authorizer, user, "clear the report cache")
        self.resolver.invalidate()
        logger.info("Decrypted credential caches cleared by user %s", user.user_id)

    # ===== HELPERS =====

    def _to_export_table(self, rows: List[ReportRow], keys: List[str]) -> ExportTable:
        columns = [self.catalog.get(key) for key in keys]
        labels = [col.label for col in columns]
        records = []
        for row in rows:
            values = row.model_dump(by_alias=True)
            records.append({col.label: format_export_value(values.get(col.key)) for col in columns})
        return ExportTable(labels, records)


def format_export_value(value: Any) -> Any:
    """Dates as ISO calendar dates, lists joined, missing values as empty cells."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return value


def _check_provider(provider: str) -> None:
    if provider not in OTA_PROVIDERS:
        raise ReportValidationError(
            f"Unknown OTA provider '{provider}'. Allowed providers: {', '.join(OTA_PROVIDERS)}"
        )
