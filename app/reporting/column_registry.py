"""Column registry for the global audit report.

Every reportable column is declared here once: its data type, where it lives
in the joined audit document, which filter operators it accepts, and which
lookups have to run before its field exists. The registry drives request
validation, join planning and pipeline construction.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple


class ColumnDataType(str, Enum):
    """Data types a column can carry."""

    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    ENUM = "enum"
    ID = "id"


class FilterOperator(str, Enum):
    """Global set of filter operators."""

    EQ = "eq"
    NEQ = "neq"
    IN = "in"
    NIN = "nin"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    BEFORE = "before"
    AFTER = "after"
    BETWEEN = "between"
    IS_NULL = "isNull"
    IS_NOT_NULL = "isNotNull"


class SourceEntity(str, Enum):
    """Entity a column's value comes from."""

    AUDIT = "audit"
    PROPERTY = "property"
    PORTFOLIO = "portfolio"
    CREDENTIALS = "credentials"
    AUDIT_STATUS = "auditStatus"
    BATCH = "batch"
    CURRENCY = "currency"
    SERVICE_TYPE = "serviceType"


# Operator sets per data type; a column may narrow but never widen these
STRING_OPERATORS: FrozenSet[FilterOperator] = frozenset({
    FilterOperator.EQ,
    FilterOperator.NEQ,
    FilterOperator.IN,
    FilterOperator.NIN,
    FilterOperator.CONTAINS,
    FilterOperator.STARTS_WITH,
    FilterOperator.ENDS_WITH,
    FilterOperator.IS_NULL,
    FilterOperator.IS_NOT_NULL,
})

NUMBER_OPERATORS: FrozenSet[FilterOperator] = frozenset({
    FilterOperator.EQ,
    FilterOperator.NEQ,
    FilterOperator.GT,
    FilterOperator.GTE,
    FilterOperator.LT,
    FilterOperator.LTE,
    FilterOperator.BETWEEN,
    FilterOperator.IS_NULL,
    FilterOperator.IS_NOT_NULL,
})

DATE_OPERATORS: FrozenSet[FilterOperator] = frozenset({
    FilterOperator.EQ,
    FilterOperator.BEFORE,
    FilterOperator.AFTER,
    FilterOperator.BETWEEN,
    FilterOperator.IS_NULL,
    FilterOperator.IS_NOT_NULL,
})

ENUM_OPERATORS: FrozenSet[FilterOperator] = frozenset({
    FilterOperator.EQ,
    FilterOperator.NEQ,
    FilterOperator.IN,
    FilterOperator.NIN,
    FilterOperator.IS_NULL,
    FilterOperator.IS_NOT_NULL,
})

BOOLEAN_OPERATORS: FrozenSet[FilterOperator] = frozenset({
    FilterOperator.EQ,
    FilterOperator.NEQ,
    FilterOperator.IS_NULL,
    FilterOperator.IS_NOT_NULL,
})

ID_OPERATORS: FrozenSet[FilterOperator] = frozenset({
    FilterOperator.EQ,
    FilterOperator.NEQ,
    FilterOperator.IN,
    FilterOperator.NIN,
    FilterOperator.IS_NULL,
    FilterOperator.IS_NOT_NULL,
})

VIRTUAL_OPERATORS: FrozenSet[FilterOperator] = frozenset({
    FilterOperator.EQ,
    FilterOperator.IN,
    FilterOperator.CONTAINS,
})

DEFAULT_OPERATORS: Dict[ColumnDataType, FrozenSet[FilterOperator]] = {
    ColumnDataType.STRING: STRING_OPERATORS,
    ColumnDataType.NUMBER: NUMBER_OPERATORS,
    ColumnDataType.DATE: DATE_OPERATORS,
    ColumnDataType.ENUM: ENUM_OPERATORS,
    ColumnDataType.BOOLEAN: BOOLEAN_OPERATORS,
    ColumnDataType.ID: ID_OPERATORS,
}

# Stable order operators are reported in by the introspection endpoint
OPERATOR_ORDER: Tuple[FilterOperator, ...] = tuple(FilterOperator)

OTA_PROVIDERS: Tuple[str, ...] = ("expedia", "agoda", "booking")


@dataclass(frozen=True)
class JoinSpec:
    """A lookup attaching one related document to the audit under ``alias``."""

    source_collection: str
    local_field: str
    foreign_field: str
    alias: str

    @property
    def depends_on(self) -> Optional[str]:
        """Alias whose fields this join keys off, if any."""
        if "." not in self.local_field:
            return None
        return self.local_field.split(".", 1)[0]


@dataclass(frozen=True)
class ColumnDefinition:
    """Definition of a reportable column."""

    key: str
    label: str
    data_type: ColumnDataType
    source_entity: SourceEntity
    field_path: str
    allowed_operators: FrozenSet[FilterOperator]
    filterable: bool = True
    sortable: bool = True
    enum_values: Optional[Tuple[str, ...]] = None
    required_joins: Tuple[JoinSpec, ...] = ()
    virtual_fields: Tuple[str, ...] = ()  # concrete paths behind a virtual column
    filter_only: bool = False  # hidden from introspection, still usable in filters

    @property
    def requires_lookup(self) -> bool:
        return bool(self.required_joins)

    @property
    def is_virtual(self) -> bool:
        return bool(self.virtual_fields)

    def ordered_operators(self) -> List[FilterOperator]:
        return [op for op in OPERATOR_ORDER if op in self.allowed_operators]


# ===== LOOKUPS =====

AUDIT_STATUS_JOIN = JoinSpec("AuditStatus", "audit_status_id", "_id", "auditStatus")
BATCH_JOIN = JoinSpec("AuditBatch", "batch_id", "_id", "batch")
PROPERTY_JOIN = JoinSpec("Property", "property_id", "_id", "property")
CREDENTIALS_JOIN = JoinSpec("PropertyCredentials", "property._id", "property_id", "credentials")
PORTFOLIO_JOIN = JoinSpec("Portfolio", "property.portfolio_id", "_id", "portfolio")
CURRENCY_JOIN = JoinSpec("Currency", "property.currency_id", "_id", "currency")
SERVICE_TYPE_JOIN = JoinSpec("ServiceType", "portfolio.service_type_id", "_id", "serviceType")

# Fixed global order; a join never appears before the join it keys off
JOIN_ORDER: Tuple[JoinSpec, ...] = (
    AUDIT_STATUS_JOIN,
    BATCH_JOIN,
    PROPERTY_JOIN,
    CREDENTIALS_JOIN,
    PORTFOLIO_JOIN,
    CURRENCY_JOIN,
    SERVICE_TYPE_JOIN,
)


class CatalogError(RuntimeError):
    """The column declarations contradict one another."""


class ColumnCatalog:
    """Read-only lookup over a set of column definitions."""

    def __init__(self, columns: Iterable[ColumnDefinition], join_order: Iterable[JoinSpec]):
        self._columns: Dict[str, ColumnDefinition] = {}
        for col in columns:
            if col.key in self._columns:
                raise CatalogError(f"Duplicate column key: {col.key}")
            self._columns[col.key] = col
        self._join_order: Tuple[JoinSpec, ...] = tuple(join_order)
        self._joins_by_alias: Dict[str, JoinSpec] = {j.alias: j for j in self._join_order}
        self._check()

    def _check(self) -> None:
        positions = {j.alias: i for i, j in enumerate(self._join_order)}
        if len(positions) != len(self._join_order):
            raise CatalogError("Join aliases must be unique")

        for join in self._join_order:
            dep = join.depends_on
            if dep is not None and dep in positions and positions[dep] >= positions[join.alias]:
                raise CatalogError(f"Join '{join.alias}' is ordered before its dependency '{dep}'")

        for col in self._columns.values():
            if not col.allowed_operators and col.filterable:
                raise CatalogError(f"Column '{col.key}' is filterable but allows no operators")
            allowed_defaults = VIRTUAL_OPERATORS if col.is_virtual else DEFAULT_OPERATORS[col.data_type]
            extra = col.allowed_operators - allowed_defaults
            if extra:
                names = ", ".join(sorted(op.value for op in extra))
                raise CatalogError(f"Column '{col.key}' allows operators outside its type: {names}")

            last = -1
            for join in col.required_joins:
                if join.alias not in positions:
                    raise CatalogError(f"Column '{col.key}' uses unknown join '{join.alias}'")
                if self._joins_by_alias[join.alias] != join:
                    raise CatalogError(f"Column '{col.key}' redefines join '{join.alias}'")
                if positions[join.alias] < last:
                    raise CatalogError(f"Column '{col.key}' lists joins out of dependency order")
                last = positions[join.alias]

    # ===== LOOKUPS =====

    def get(self, key: str) -> Optional[ColumnDefinition]:
        return self._columns.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._columns

    def keys(self) -> List[str]:
        return list(self._columns)

    def all_columns(self) -> List[ColumnDefinition]:
        return list(self._columns.values())

    def all_filterable(self) -> List[ColumnDefinition]:
        return [col for col in self._columns.values() if col.filterable]

    def all_sortable(self) -> List[ColumnDefinition]:
        return [col for col in self._columns.values() if col.sortable]

    def visible_columns(self) -> List[ColumnDefinition]:
        return [col for col in self._columns.values() if not col.filter_only]

    @property
    def join_order(self) -> Tuple[JoinSpec, ...]:
        return self._join_order

    def join(self, alias: str) -> Optional[JoinSpec]:
        return self._joins_by_alias.get(alias)

    def required_joins_for(self, keys: Iterable[str]) -> List[JoinSpec]:
        """Union of the referenced columns' joins, deduplicated by alias, in global order."""
        aliases = set()
        for key in keys:
            col = self._columns.get(key)
            if col is None:
                continue
            aliases.update(join.alias for join in col.required_joins)
        return [join for join in self._join_order if join.alias in aliases]

    def projection_paths(self) -> List[str]:
        """Every document path a report row can be built from."""
        paths: List[str] = []
        for col in self._columns.values():
            for path in col.virtual_fields or (col.field_path,):
                if path not in paths:
                    paths.append(path)
        return paths


# ===== COLUMN DEFINITIONS =====

COLUMN_REGISTRY: Dict[str, ColumnDefinition] = {}


def register_column(definition: ColumnDefinition) -> None:
    """Register a column definition."""
    COLUMN_REGISTRY[definition.key] = definition


def _ota_fields(suffix: str) -> Tuple[str, ...]:
    return tuple(f"credentials.{provider}_{suffix}" for provider in OTA_PROVIDERS)


# Identifiers used only to narrow the report
register_column(ColumnDefinition(
    key="auditId",
    label="Audit ID",
    data_type=ColumnDataType.ID,
    source_entity=SourceEntity.AUDIT,
    field_path="_id",
    allowed_operators=ID_OPERATORS,
    sortable=False,
    filter_only=True,
))

register_column(ColumnDefinition(
    key="propertyId",
    label="Property ID",
    data_type=ColumnDataType.ID,
    source_entity=SourceEntity.AUDIT,
    field_path="property_id",
    allowed_operators=ID_OPERATORS,
    sortable=False,
    filter_only=True,
))

register_column(ColumnDefinition(
    key="portfolioId",
    label="Portfolio ID",
    data_type=ColumnDataType.ID,
    source_entity=SourceEntity.PROPERTY,
    field_path="property.portfolio_id",
    allowed_operators=ID_OPERATORS,
    sortable=False,
    required_joins=(PROPERTY_JOIN,),
    filter_only=True,
))

# Portfolio / property
register_column(ColumnDefinition(
    key="portfolioName",
    label="Portfolio",
    data_type=ColumnDataType.STRING,
    source_entity=SourceEntity.PORTFOLIO,
    field_path="portfolio.name",
    allowed_operators=STRING_OPERATORS,
    required_joins=(PROPERTY_JOIN, PORTFOLIO_JOIN),
))

register_column(ColumnDefinition(
    key="propertyName",
    label="Property",
    data_type=ColumnDataType.STRING,
    source_entity=SourceEntity.PROPERTY,
    field_path="property.name",
    allowed_operators=STRING_OPERATORS,
    required_joins=(PROPERTY_JOIN,),
))

register_column(ColumnDefinition(
    key="propertyIsActive",
    label="Property Active",
    data_type=ColumnDataType.BOOLEAN,
    source_entity=SourceEntity.PROPERTY,
    field_path="property.is_active",
    allowed_operators=BOOLEAN_OPERATORS,
    required_joins=(PROPERTY_JOIN,),
))

register_column(ColumnDefinition(
    key="serviceType",
    label="Service Type",
    data_type=ColumnDataType.STRING,
    source_entity=SourceEntity.SERVICE_TYPE,
    field_path="serviceType.type",
    allowed_operators=frozenset({FilterOperator.EQ, FilterOperator.IN, FilterOperator.NEQ}),
    required_joins=(PROPERTY_JOIN, PORTFOLIO_JOIN, SERVICE_TYPE_JOIN),
))

# Audit
register_column(ColumnDefinition(
    key="billingType",
    label="Billing Type",
    data_type=ColumnDataType.ENUM,
    source_entity=SourceEntity.AUDIT,
    field_path="billing_type",
    allowed_operators=ENUM_OPERATORS,
    enum_values=("VCC", "DB", "EBS"),
))

register_column(ColumnDefinition(
    key="otaType",
    label="OTA Type",
    data_type=ColumnDataType.ENUM,
    source_entity=SourceEntity.AUDIT,
    field_path="type_of_ota",
    allowed_operators=ENUM_OPERATORS,
    enum_values=OTA_PROVIDERS,
))

# OTA credentials: one column over three provider-specific fields
register_column(ColumnDefinition(
    key="otaId",
    label="OTA ID",
    data_type=ColumnDataType.STRING,
    source_entity=SourceEntity.CREDENTIALS,
    field_path="credentials.ota_id",
    allowed_operators=VIRTUAL_OPERATORS,
    sortable=False,
    required_joins=(PROPERTY_JOIN, CREDENTIALS_JOIN),
    virtual_fields=_ota_fields("id"),
))

register_column(ColumnDefinition(
    key="otaUsername",
    label="OTA Username",
    data_type=ColumnDataType.STRING,
    source_entity=SourceEntity.CREDENTIALS,
    field_path="credentials.ota_username",
    allowed_operators=VIRTUAL_OPERATORS,
    sortable=False,
    required_joins=(PROPERTY_JOIN, CREDENTIALS_JOIN),
    virtual_fields=_ota_fields("username"),
))

register_column(ColumnDefinition(
    key="otaPassword",
    label="OTA Password",
    data_type=ColumnDataType.STRING,
    source_entity=SourceEntity.CREDENTIALS,
    field_path="credentials.ota_password",
    allowed_operators=VIRTUAL_OPERATORS,
    sortable=False,
    required_joins=(PROPERTY_JOIN, CREDENTIALS_JOIN),
    virtual_fields=_ota_fields("password"),
))

register_column(ColumnDefinition(
    key="auditStatus",
    label="OTA Review Status",
    data_type=ColumnDataType.STRING,
    source_entity=SourceEntity.AUDIT_STATUS,
    field_path="auditStatus.status",
    allowed_operators=STRING_OPERATORS,
    required_joins=(AUDIT_STATUS_JOIN,),
))

register_column(ColumnDefinition(
    key="batchNo",
    label="Batch Number",
    data_type=ColumnDataType.STRING,
    source_entity=SourceEntity.BATCH,
    field_path="batch.batch_no",
    allowed_operators=STRING_OPERATORS,
    required_joins=(BATCH_JOIN,),
))

# Dates
register_column(ColumnDefinition(
    key="startDate",
    label="Start Date",
    data_type=ColumnDataType.DATE,
    source_entity=SourceEntity.AUDIT,
    field_path="start_date",
    allowed_operators=DATE_OPERATORS,
))

register_column(ColumnDefinition(
    key="endDate",
    label="End Date",
    data_type=ColumnDataType.DATE,
    source_entity=SourceEntity.AUDIT,
    field_path="end_date",
    allowed_operators=DATE_OPERATORS,
))

register_column(ColumnDefinition(
    key="nextDueDate",
    label="Next Due Date",
    data_type=ColumnDataType.DATE,
    source_entity=SourceEntity.PROPERTY,
    field_path="property.next_due_date",
    allowed_operators=DATE_OPERATORS,
    required_joins=(PROPERTY_JOIN,),
))

# Money
register_column(ColumnDefinition(
    key="currency",
    label="Currency",
    data_type=ColumnDataType.STRING,
    source_entity=SourceEntity.CURRENCY,
    field_path="currency.code",
    allowed_operators=frozenset({FilterOperator.EQ, FilterOperator.IN, FilterOperator.NEQ}),
    required_joins=(PROPERTY_JOIN, CURRENCY_JOIN),
))

register_column(ColumnDefinition(
    key="currencySymbol",
    label="Currency Symbol",
    data_type=ColumnDataType.STRING,
    source_entity=SourceEntity.CURRENCY,
    field_path="currency.symbol",
    allowed_operators=frozenset({FilterOperator.EQ, FilterOperator.IN, FilterOperator.NEQ}),
    required_joins=(PROPERTY_JOIN, CURRENCY_JOIN),
))

register_column(ColumnDefinition(
    key="amountCollectable",
    label="Amount Collectable",
    data_type=ColumnDataType.NUMBER,
    source_entity=SourceEntity.AUDIT,
    field_path="amount_collectable",
    allowed_operators=NUMBER_OPERATORS,
))

register_column(ColumnDefinition(
    key="amountConfirmed",
    label="Amount Confirmed",
    data_type=ColumnDataType.NUMBER,
    source_entity=SourceEntity.AUDIT,
    field_path="amount_confirmed",
    allowed_operators=NUMBER_OPERATORS,
))

register_column(ColumnDefinition(
    key="portfolioContactEmail",
    label="Portfolio Contact Email",
    data_type=ColumnDataType.STRING,
    source_entity=SourceEntity.PORTFOLIO,
    field_path="portfolio.contact_email",
    allowed_operators=STRING_OPERATORS,
    required_joins=(PROPERTY_JOIN, PORTFOLIO_JOIN),
))

register_column(ColumnDefinition(
    key="isArchived",
    label="Archived",
    data_type=ColumnDataType.BOOLEAN,
    source_entity=SourceEntity.AUDIT,
    field_path="is_archived",
    allowed_operators=BOOLEAN_OPERATORS,
))

register_column(ColumnDefinition(
    key="createdAt",
    label="Created At",
    data_type=ColumnDataType.DATE,
    source_entity=SourceEntity.AUDIT,
    field_path="created_at",
    allowed_operators=DATE_OPERATORS,
))


# Columns every report row displays, whatever the request references
DEFAULT_DISPLAY_COLUMNS: Tuple[str, ...] = (
    "propertyName",
    "portfolioName",
    "currency",
    "auditStatus",
    "batchNo",
    "serviceType",
    "portfolioContactEmail",
    "nextDueDate",
)

# Joins needed regardless of columns: OTA id/username/password are resolved per row
IMPLICIT_JOIN_COLUMNS: Tuple[str, ...] = ("otaId",)

REPORT_CATALOG = ColumnCatalog(COLUMN_REGISTRY.values(), JOIN_ORDER)


def get_column(key: str) -> Optional[ColumnDefinition]:
    """Get column definition by key."""
    return REPORT_CATALOG.get(key)
