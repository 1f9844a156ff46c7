"""
Unit tests for aggregation pipeline construction.
"""

from datetime import datetime

import pytest

from app.query.builder import PipelineBuilder
from app.query.stages import Facet, Join, PostMatch, PreMatch, Project, Sort, Unwind
from app.reporting.column_registry import get_column
from app.reporting.exceptions import ReportValidationError
from app.reporting.schemas import ColumnFilter, ReportQuery


def query(**kwargs) -> ReportQuery:
    return ReportQuery.model_validate(kwargs)


def _describe(stage):
    if isinstance(stage, Join):
        return ("Join", stage.spec.alias)
    return ("Unwind", stage.alias)


@pytest.fixture
def builder():
    return PipelineBuilder()


class TestPipelineShape:
    """Test stage order and default stages"""

    def test_default_query(self, builder):
        pipeline = builder.build(query())

        assert pipeline.stages[0] == PreMatch({"is_archived": False})
        assert pipeline.stages_of(Sort) == [Sort((("created_at", -1), ("_id", -1)))]
        assert pipeline.stages[-1] == Facet(skip=0, limit=25, projection=builder._build_projection())
        assert pipeline.stages_of(PostMatch) == []

    def test_joins_follow_dependency_order(self, builder):
        pipeline = builder.build(query())

        assert pipeline.join_aliases == ["auditStatus", "batch", "property", "credentials", "portfolio", "currency", "serviceType"]
        kinds = [_describe(s) for s in pipeline.stages if isinstance(s, (Join, Unwind))]
        assert kinds[:5] == [
            ("Join", "auditStatus"), ("Join", "batch"), ("Join", "property"), ("Unwind", "property"), ("Join", "credentials"),
        ]
        assert kinds.index(("Unwind", "portfolio")) < kinds.index(("Join", "serviceType"))

    def test_include_archived_drops_pre_match(self, builder):
        pipeline = builder.build(query(includeArchived=True))

        assert not pipeline.stages_of(PreMatch)
        assert isinstance(pipeline.stages[0], Join)

    def test_batch_joined_for_display(self, builder):
        assert "batch" in builder.build(query()).join_aliases

    def test_display_columns_are_configurable(self):
        builder = PipelineBuilder(display_columns=("propertyName",))

        assert "batch" not in builder.build(query()).join_aliases
        pipeline = builder.build(query(filters=[{"column": "batchNo", "operator": "isNull"}]))
        assert "batch" in pipeline.join_aliases

    def test_post_match_after_every_join(self, builder):
        pipeline = builder.build(query(filters=[{"column": "portfolioName", "operator": "contains", "value": "Marriott"}]))

        positions = [i for i, s in enumerate(pipeline.stages) if isinstance(s, (Join, Unwind))]
        post_index = pipeline.stages.index(pipeline.stages_of(PostMatch)[0])
        assert post_index > max(positions)

    def test_pagination_window(self, builder):
        facet = builder.build(query(page=3, limit=10)).stages[-1]

        assert facet.skip == 20
        assert facet.limit == 10

    def test_export_ends_with_projection(self, builder):
        pipeline = builder.build_for_export(query(), ["batchNo", "propertyName"])

        assert isinstance(pipeline.stages[-1], Project)
        assert not pipeline.paginated
        assert "batch" in pipeline.join_aliases


class TestConditions:
    """Test per-operator match conditions"""

    def test_audit_filter_goes_to_pre_match(self, builder):
        pipeline = builder.build(query(filters=[{"column": "billingType", "operator": "in", "value": ["VCC", "DB"]}]))

        assert pipeline.stages[0] == PreMatch({"is_archived": False, "billing_type": {"$in": ["VCC", "DB"]}})

    def test_joined_filter_goes_to_post_match(self, builder):
        pipeline = builder.build(query(filters=[{"column": "portfolioName", "operator": "contains", "value": "Marriott"}]))

        assert pipeline.stages_of(PostMatch) == [
            PostMatch(({"portfolio.name": {"$regex": "Marriott", "$options": "i"}},))
        ]

    def test_repeated_field_falls_back_to_and(self, builder):
        pipeline = builder.build(query(filters=[
            {"column": "amountCollectable", "operator": "gt", "value": 10},
            {"column": "amountCollectable", "operator": "lt", "value": "100"},
        ]))

        assert pipeline.stages[0].condition == {"$and": [
            {"is_archived": False},
            {"amount_collectable": {"$gt": 10}},
            {"amount_collectable": {"$lt": 100}},
        ]}

    @pytest.mark.parametrize(
        "operator,value,expected",
        [
            ("eq", "Bay", "Bay"),
            ("neq", "Bay", {"$ne": "Bay"}),
            ("nin", ["A", "B"], {"$nin": ["A", "B"]}),
            ("startsWith", "Mar", {"$regex": "^Mar", "$options": "i"}),
            ("endsWith", "Bay", {"$regex": "Bay$", "$options": "i"}),
            ("contains", "a.b", {"$regex": "a\\.b", "$options": "i"}),
            ("isNull", None, None),
            ("isNotNull", None, {"$ne": None}),
        ],
    )
    def test_string_operators(self, builder, operator, value, expected):
        flt = ColumnFilter(column="propertyName", operator=operator, value=value)
        assert builder.build_condition(get_column("propertyName"), flt) == {"property.name": expected}

    def test_date_operators(self, builder):
        col = get_column("startDate")

        before = builder.build_condition(col, ColumnFilter(column="startDate", operator="before", value="2024-03-01"))
        after = builder.build_condition(col, ColumnFilter(column="startDate", operator="after", value="2024-03-01"))
        between = builder.build_condition(
            col,
            ColumnFilter(column="startDate", operator="between", value={"from": "2024-01-01", "to": "2024-02-01"}),
        )

        assert before == {"start_date": {"$lt": datetime(2024, 3, 1)}}
        assert after == {"start_date": {"$gt": datetime(2024, 3, 1)}}
        assert between == {"start_date": {"$gte": datetime(2024, 1, 1), "$lte": datetime(2024, 2, 1)}}

    def test_virtual_column_matches_any_provider(self, builder):
        flt = ColumnFilter(column="otaId", operator="eq", value="EXP-100")

        assert builder.build_condition(get_column("otaId"), flt) == {"$or": [
            {"credentials.expedia_id": "EXP-100"},
            {"credentials.agoda_id": "EXP-100"},
            {"credentials.booking_id": "EXP-100"},
        ]}

    def test_virtual_column_rejects_other_operators(self, builder):
        flt = ColumnFilter(column="otaId", operator="neq", value="EXP-100")

        with pytest.raises(ReportValidationError):
            builder.build_condition(get_column("otaId"), flt)

    def test_unknown_column_reaching_builder(self, builder):
        with pytest.raises(ReportValidationError, match="Unknown column"):
            builder.build(query(filters=[{"column": "bogus", "operator": "eq", "value": 1}]))


class TestSort:
    """Test sort stage construction"""

    def test_requested_sort_with_tiebreak(self, builder):
        sort = builder.build(query(sort=[{"column": "startDate", "order": "asc"}])).stages_of(Sort)[0]

        assert sort.keys == (("start_date", 1), ("_id", 1))

    def test_multi_key_priority_and_duplicates(self, builder):
        sort = builder.build(query(sort=[
            {"column": "propertyName", "order": "asc"},
            {"column": "startDate", "order": "desc"},
            {"column": "propertyName", "order": "desc"},
        ])).stages_of(Sort)[0]

        assert sort.keys == (("property.name", 1), ("start_date", -1), ("_id", -1))

    def test_unsortable_columns_fall_back_to_default(self, builder):
        sort = builder.build(query(sort=[{"column": "otaId", "order": "asc"}])).stages_of(Sort)[0]

        assert sort.keys == (("created_at", -1), ("_id", -1))
