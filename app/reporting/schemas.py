"""Pydantic schemas for the global report API."""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.reporting.column_registry import ColumnDataType, FilterOperator


class SortOrder(str, Enum):
    """Sort direction."""

    ASC = "asc"
    DESC = "desc"


class ExportFormat(str, Enum):
    """Export file formats."""

    CSV = "csv"
    XLSX = "xlsx"


class CamelModel(BaseModel):
    """Base schema exchanging camelCase JSON while keeping snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ===== REQUEST SCHEMAS =====


class ColumnFilter(CamelModel):
    """A single column filter: ``{column, operator, value}``."""

    column: str = Field(min_length=1)
    operator: FilterOperator
    value: Any = None

    model_config = ConfigDict(frozen=True)


class SortSpec(CamelModel):
    """A single sort key."""

    column: str = Field(min_length=1)
    order: SortOrder

    model_config = ConfigDict(frozen=True)


class ReportQuery(CamelModel):
    """Paginated report request. Built once per request and never mutated."""

    filters: List[ColumnFilter] = Field(default_factory=list)
    sort: List[SortSpec] = Field(default_factory=list)
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=25, ge=1, le=100)
    include_archived: bool = False

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def exclude_archived(self) -> bool:
        return not self.include_archived

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


class ReportExportRequest(ReportQuery):
    """Export request: same filtering as the report, plus format and column selection."""

    format: ExportFormat
    columns: Optional[List[str]] = None

    @field_validator("columns")
    @classmethod
    def validate_columns(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        # Keep request order, drop duplicates
        seen = []
        for key in v:
            if key not in seen:
                seen.append(key)
        return seen


# ===== RESPONSE SCHEMAS =====


class ReportRow(CamelModel):
    """One audit joined against its property, portfolio, currency, service type and credentials."""

    audit_id: str
    portfolio_id: Optional[str] = None
    portfolio_name: str = ""
    property_id: Optional[str] = None
    property_name: str = ""
    property_is_active: Optional[bool] = None
    service_type: Optional[str] = None
    billing_type: Optional[str] = None
    ota_type: List[str] = Field(default_factory=list)
    ota_id: Optional[str] = None
    ota_username: Optional[str] = None
    ota_password: Optional[str] = None
    expedia_id: Optional[str] = None
    expedia_username: Optional[str] = None
    agoda_id: Optional[str] = None
    agoda_username: Optional[str] = None
    booking_id: Optional[str] = None
    booking_username: Optional[str] = None
    audit_status: Optional[str] = None
    batch_no: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    next_due_date: Optional[datetime] = None
    currency: str = ""
    currency_symbol: Optional[str] = None
    amount_collectable: Optional[float] = None
    amount_confirmed: Optional[float] = None
    portfolio_contact_email: Optional[str] = None
    is_archived: bool = False
    created_at: Optional[datetime] = None


class PaginationMetadata(CamelModel):
    total_documents: int
    current_page: int
    total_pages: int
    page_size: int


class GlobalReportResponse(CamelModel):
    data: List[ReportRow]
    metadata: PaginationMetadata


class ColumnMetadata(CamelModel):
    """Column description a UI uses to build filter controls."""

    key: str
    label: str
    data_type: ColumnDataType
    filterable: bool
    sortable: bool
    allowed_operators: List[FilterOperator]
    enum_values: Optional[List[str]] = None


class ColumnsMetadataResponse(CamelModel):
    columns: List[ColumnMetadata]


class OtaIdItem(CamelModel):
    ota_id: str
    ota_type: str


class OtaUsernameItem(CamelModel):
    ota_username: str
    ota_type: str


class OtaPasswordItem(CamelModel):
    password: str
    ota_type: str

    model_config = ConfigDict(frozen=True)


class OtaIdsResponse(CamelModel):
    data: List[OtaIdItem]


class OtaUsernamesResponse(CamelModel):
    data: List[OtaUsernameItem]


class OtaPasswordsResponse(CamelModel):
    data: List[OtaPasswordItem]


class StringListResponse(CamelModel):
    data: List[str]


class NamedItem(CamelModel):
    id: str
    name: str


class NamedItemsResponse(CamelModel):
    data: List[NamedItem]
