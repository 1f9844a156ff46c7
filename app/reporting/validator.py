"""Request validation against the column registry.

Runs before any pipeline is built; the first violation aborts the request.
"""

import logging
from typing import Any, Iterable, List

from app.reporting.column_registry import REPORT_CATALOG, ColumnCatalog, ColumnDefinition, FilterOperator
from app.reporting.exceptions import ReportValidationError
from app.reporting.schemas import ColumnFilter, SortSpec

logger = logging.getLogger(__name__)

VALUELESS_OPERATORS = frozenset({FilterOperator.IS_NULL, FilterOperator.IS_NOT_NULL})
LIST_OPERATORS = frozenset({FilterOperator.IN, FilterOperator.NIN})


class ReportRequestValidator:
    """Checks filters and sort keys against a column catalog."""

    def __init__(self, catalog: ColumnCatalog = REPORT_CATALOG):
        self.catalog = catalog

    def validate(self, filters: Iterable[ColumnFilter], sort: Iterable[SortSpec]) -> None:
        self.validate_filters(filters)
        self.validate_sort(sort)

    def validate_filters(self, filters: Iterable[ColumnFilter]) -> None:
        for flt in filters:
            col = self._require_column(flt.column)
            if not col.filterable:
                raise ReportValidationError(f"Column '{flt.column}' is not filterable")
            if flt.operator not in col.allowed_operators:
                allowed = ", ".join(op.value for op in col.ordered_operators())
                raise ReportValidationError(
                    f"Operator '{flt.operator.value}' is not allowed for column '{flt.column}'. "
                    f"Allowed operators: {allowed}"
                )
            if flt.operator in VALUELESS_OPERATORS:
                continue
            self._check_value_shape(col, flt)
            if col.enum_values:
                self._check_enum_values(col, flt.value)

    def validate_sort(self, sort: Iterable[SortSpec]) -> None:
        for spec in sort:
            col = self._require_column(spec.column)
            if not col.sortable:
                raise ReportValidationError(f"Column '{spec.column}' is not sortable")

    def validate_columns(self, columns: Iterable[str]) -> None:
        for key in columns:
            self._require_column(key)

    # ===== HELPERS =====

    def _require_column(self, key: str) -> ColumnDefinition:
        col = self.catalog.get(key)
        if col is None:
            logger.info("Rejected report request referencing unknown column %r", key)
            raise ReportValidationError(f"Unknown column: {key}")
        return col

    def _check_value_shape(self, col: ColumnDefinition, flt: ColumnFilter) -> None:
        value = flt.value
        if value is None:
            raise ReportValidationError(
                f"Operator '{flt.operator.value}' on column '{col.key}' requires a value"
            )
        if flt.operator == FilterOperator.BETWEEN:
            if not isinstance(value, dict) or "from" not in value or "to" not in value:
                raise ReportValidationError(
                    f"Operator 'between' on column '{col.key}' requires a {{from, to}} range"
                )
            if value["from"] is None or value["to"] is None:
                raise ReportValidationError(
                    f"Range bounds for column '{col.key}' must not be null"
                )
            return
        if isinstance(value, dict):
            raise ReportValidationError(
                f"Operator '{flt.operator.value}' on column '{col.key}' does not accept a range"
            )
        if isinstance(value, list):
            if flt.operator not in LIST_OPERATORS:
                raise ReportValidationError(
                    f"Operator '{flt.operator.value}' on column '{col.key}' does not accept a list"
                )
            if not value:
                raise ReportValidationError(
                    f"Operator '{flt.operator.value}' on column '{col.key}' requires at least one value"
                )
            for element in value:
                if element is None or isinstance(element, (dict, list)):
                    raise ReportValidationError(
                        f"Operator '{flt.operator.value}' on column '{col.key}' accepts only scalar values"
                    )

    def _check_enum_values(self, col: ColumnDefinition, value: Any) -> None:
        values: List[Any] = value if isinstance(value, list) else [value]
        for val in values:
            if val not in col.enum_values:
                allowed = ", ".join(col.enum_values)
                raise ReportValidationError(
                    f"Invalid value '{val}' for column '{col.key}'. Allowed values: {allowed}"
                )
