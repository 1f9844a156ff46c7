"""API router for the global audit report."""

from enum import Enum

from fastapi import APIRouter
from fastapi.responses import Response

from app.core.dependencies import ReportServiceDep, UserDep
from app.reporting.export import MEDIA_TYPES, export_filename, render_export
from app.reporting.schemas import (
    ColumnsMetadataResponse,
    GlobalReportResponse,
    NamedItemsResponse,
    OtaIdsResponse,
    OtaPasswordsResponse,
    OtaUsernamesResponse,
    ReportExportRequest,
    ReportQuery,
    StringListResponse,
)

router = APIRouter(prefix="/global-report", tags=["global-report"])


class OtaProvider(str, Enum):
    EXPEDIA = "expedia"
    AGODA = "agoda"
    BOOKING = "booking"


# ===== REPORT ENDPOINTS =====


@router.post("", response_model=GlobalReportResponse)
@router.post("/", response_model=GlobalReportResponse, include_in_schema=False)
async def get_report(query: ReportQuery, user: UserDep, service: ReportServiceDep) -> GlobalReportResponse:
    """Filtered, sorted, paginated report across all portfolios and properties."""
    return await service.get_report(query, user)


@router.post("/export")
async def export_report(request: ReportExportRequest, user: UserDep, service: ReportServiceDep) -> Response:
    """Export every matching row as CSV or XLSX, using column labels as headers."""
    table = await service.export_report(request, user)
    content = render_export(table, request.format)
    return Response(
        content=content,
        media_type=MEDIA_TYPES[request.format],
        headers={"Content-Disposition": f"attachment; filename={export_filename(request.format)}"},
    )


@router.get("/columns", response_model=ColumnsMetadataResponse)
def get_columns(user: UserDep, service: ReportServiceDep) -> ColumnsMetadataResponse:
    return service.get_columns_metadata(user)


# ===== LOOKUP LIST ENDPOINTS =====
# Literal paths are declared before the /{provider}-... patterns so they win


@router.get("/ota-ids", response_model=OtaIdsResponse)
async def get_ota_ids(user: UserDep, service: ReportServiceDep) -> OtaIdsResponse:
    return await service.get_ota_ids(user)


@router.get("/ota-usernames", response_model=OtaUsernamesResponse)
async def get_ota_usernames(user: UserDep, service: ReportServiceDep) -> OtaUsernamesResponse:
    return await service.get_ota_usernames(user)


@router.get("/ota-passwords", response_model=OtaPasswordsResponse)
async def get_ota_passwords(user: UserDep, service: ReportServiceDep) -> OtaPasswordsResponse:
    """Decrypted OTA passwords with their OTA type, sorted by type then password."""
    return await service.get_ota_passwords(user)


@router.get("/portfolio-contact-emails", response_model=StringListResponse)
async def get_portfolio_contact_emails(user: UserDep, service: ReportServiceDep) -> StringListResponse:
    return await service.get_portfolio_contact_emails(user)


@router.get("/portfolios", response_model=NamedItemsResponse)
async def get_portfolios(user: UserDep, service: ReportServiceDep) -> NamedItemsResponse:
    return await service.get_portfolios(user)


@router.get("/properties", response_model=NamedItemsResponse)
async def get_properties(user: UserDep, service: ReportServiceDep) -> NamedItemsResponse:
    return await service.get_properties(user)


@router.get("/{provider}-ids", response_model=StringListResponse)
async def get_provider_ids(provider: OtaProvider, user: UserDep, service: ReportServiceDep) -> StringListResponse:
    return await service.get_provider_ids(provider.value, user)


@router.get("/{provider}-usernames", response_model=StringListResponse)
async def get_provider_usernames(
    provider: OtaProvider, user: UserDep, service: ReportServiceDep
) -> StringListResponse:
    return await service.get_provider_usernames(provider.value, user)


@router.get("/{provider}-passwords", response_model=StringListResponse)
async def get_provider_passwords(
    provider: OtaProvider, user: UserDep, service: ReportServiceDep
) -> StringListResponse:
    return await service.get_provider_passwords(provider.value, user)


# ===== CACHE =====


@router.delete("/cache", status_code=204)
def clear_cache(user: UserDep, service: ReportServiceDep) -> Response:
    """Drop cached decrypted passwords so the next request decrypts from the store."""
    service.clear_cache(user)
    return Response(status_code=204)
