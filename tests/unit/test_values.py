"""
Unit tests for filter value coercion and regex escaping.
"""

import re
from datetime import datetime

import pytest
from bson import ObjectId

from app.query.values import coerce_value, escape_regex, to_datetime, to_number
from app.reporting.column_registry import FilterOperator, get_column
from app.reporting.exceptions import ReportValidationError


class TestEscapeRegex:
    """Test that user text always matches literally"""

    @pytest.mark.parametrize("text", ["a.b", "(x)", "1+1", "$100", "a|b", "[v]", "c:\\dir", "^start", "q?", "{2}"])
    def test_escaped_text_matches_itself_only(self, text):
        pattern = re.compile(escape_regex(text))
        assert pattern.search(f"prefix {text} suffix")

    def test_dot_is_literal(self):
        assert re.fullmatch(escape_regex("a.b"), "axb") is None


class TestCoercion:
    """Test per-type value coercion"""

    def test_id_column_coerces_to_object_id(self):
        oid = ObjectId()
        assert coerce_value(get_column("auditId"), str(oid), FilterOperator.EQ) == oid

    def test_invalid_id_is_validation_error(self):
        with pytest.raises(ReportValidationError, match="Invalid id"):
            coerce_value(get_column("propertyId"), "not-an-id", FilterOperator.EQ)

    def test_id_list(self):
        oids = [ObjectId(), ObjectId()]
        result = coerce_value(get_column("portfolioId"), [str(o) for o in oids], FilterOperator.IN)
        assert result == oids

    def test_number_from_string(self):
        assert to_number("12", "amountCollectable") == 12
        assert to_number("12.5", "amountCollectable") == 12.5

    def test_bool_is_not_a_number(self):
        with pytest.raises(ReportValidationError):
            to_number(True, "amountCollectable")

    def test_iso_date_with_zulu_becomes_naive_utc(self):
        assert to_datetime("2024-03-01T10:00:00Z", "startDate") == datetime(2024, 3, 1, 10, 0)

    def test_date_only_string(self):
        assert to_datetime("2024-03-01", "startDate") == datetime(2024, 3, 1)

    def test_bad_date(self):
        with pytest.raises(ReportValidationError, match="Invalid date"):
            to_datetime("yesterday", "startDate")

    def test_between_keeps_range_shape(self):
        result = coerce_value(get_column("startDate"), {"from": "2024-01-01", "to": "2024-01-31"}, FilterOperator.BETWEEN)
        assert result == {"from": datetime(2024, 1, 1), "to": datetime(2024, 1, 31)}

    def test_boolean_from_string(self):
        assert coerce_value(get_column("isArchived"), "true", FilterOperator.EQ) is True

    def test_null_operators_ignore_value(self):
        assert coerce_value(get_column("batchNo"), True, FilterOperator.IS_NULL) is None

    def test_strings_pass_through(self):
        assert coerce_value(get_column("propertyName"), "Bay", FilterOperator.EQ) == "Bay"


class TestNumberRange:
    """Test that numbers the store cannot encode are rejected"""

    @pytest.mark.parametrize("value", ["1" + "0" * 25, 2**63, -(2**63) - 1])
    def test_integer_outside_int64(self, value):
        with pytest.raises(ReportValidationError, match="out of range"):
            to_number(value, "amountCollectable")

    @pytest.mark.parametrize("value", ["nan", "inf", "-Infinity", float("inf")])
    def test_non_finite(self, value):
        with pytest.raises(ReportValidationError, match="not finite"):
            to_number(value, "amountCollectable")

    def test_int64_bounds_accepted(self):
        assert to_number(str(2**63 - 1), "amountCollectable") == 2**63 - 1
        assert to_number(-(2**63), "amountCollectable") == -(2**63)

    def test_out_of_range_between_bound(self):
        with pytest.raises(ReportValidationError):
            coerce_value(get_column("amountCollectable"), {"from": 0, "to": "9" * 30}, FilterOperator.BETWEEN)
