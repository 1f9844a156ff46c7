"""Coercion of filter values into the document store's native representations."""

import math
import re
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Union

from bson import ObjectId
from bson.errors import InvalidId

from app.reporting.column_registry import ColumnDataType, ColumnDefinition, FilterOperator
from app.reporting.exceptions import ReportValidationError

_REGEX_SPECIAL = re.compile(r"([.*+?^${}()|\[\]\\])")

# BSON integers are signed 64-bit
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


def escape_regex(value: str) -> str:
    """Escape every regex metacharacter so the value matches literally."""
    return _REGEX_SPECIAL.sub(r"\\\1", value)


def to_object_id(value: Any, column: str) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError) as e:
        raise ReportValidationError(f"Invalid id '{value}' for column '{column}'") from e


def to_number(value: Any, column: str) -> Union[int, float]:
    """Parse a number the store can hold: a signed 64-bit int or a finite float."""
    number = _parse_number(value)
    if number is None:
        raise ReportValidationError(f"Invalid number '{value}' for column '{column}'")
    if isinstance(number, int) and not INT64_MIN <= number <= INT64_MAX:
        raise ReportValidationError(f"Number '{value}' is out of range for column '{column}'")
    if isinstance(number, float) and not math.isfinite(number):
        raise ReportValidationError(f"Number '{value}' is not finite for column '{column}'")
    return number


def _parse_number(value: Any) -> Union[int, float, None]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            pass
    return None


def to_datetime(value: Any, column: str) -> datetime:
    """Parse to a naive UTC datetime, which is how pymongo stores timestamps."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise ReportValidationError(f"Invalid date '{value}' for column '{column}'") from e
    else:
        raise ReportValidationError(f"Invalid date '{value}' for column '{column}'")

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_bool(value: Any, column: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ReportValidationError(f"Invalid boolean '{value}' for column '{column}'")


_SCALAR_COERCERS = {
    ColumnDataType.ID: to_object_id,
    ColumnDataType.NUMBER: to_number,
    ColumnDataType.DATE: to_datetime,
    ColumnDataType.BOOLEAN: to_bool,
}


def coerce_scalar(col: ColumnDefinition, value: Any) -> Any:
    coercer = _SCALAR_COERCERS.get(col.data_type)
    if coercer is None:
        return value
    return coercer(value, col.key)


def coerce_value(col: ColumnDefinition, value: Any, operator: FilterOperator) -> Any:
    """Normalize a filter value according to the column's data type.

    Ranges keep their ``{"from", "to"}`` shape and lists keep their order;
    each element is coerced on its own. ``isNull``/``isNotNull`` ignore the
    value entirely.
    """
    if operator in (FilterOperator.IS_NULL, FilterOperator.IS_NOT_NULL):
        return None

    if operator == FilterOperator.BETWEEN:
        if not isinstance(value, dict) or "from" not in value or "to" not in value:
            raise ReportValidationError(f"Column '{col.key}' requires a {{from, to}} range")
        return {"from": coerce_scalar(col, value["from"]), "to": coerce_scalar(col, value["to"])}

    if operator in (FilterOperator.IN, FilterOperator.NIN):
        values: List[Any] = value if isinstance(value, list) else [value]
        return [coerce_scalar(col, v) for v in values]

    return coerce_scalar(col, value)


def regex_condition(pattern: str) -> Dict[str, str]:
    return {"$regex": pattern, "$options": "i"}
