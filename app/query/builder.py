"""
Aggregation pipeline builder for the global audit report.

This is the single place report requests are turned into store queries.
Both the paginated report and the export go through ``_build`` and differ
only in their terminal stage.

Stage order:
1. pre-join ``$match`` on audit fields (plus archival exclusion)
2. lookups in dependency order, unwinding early the ones later lookups key off
3. unwind of the remaining lookups
4. post-join ``$match`` on joined fields, all conditions under ``$and``
5. ``$sort`` (default ``created_at`` descending)
6. ``$facet`` with page + total count, or a bare ``$project`` for export
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from app.query.planner import JoinPlan, JoinPlanner
from app.query.stages import Condition, Facet, Join, Pipeline, PostMatch, PreMatch, Project, Sort, Stage, Unwind
from app.query.values import coerce_value, escape_regex, regex_condition
from app.reporting.column_registry import (
    DEFAULT_DISPLAY_COLUMNS,
    IMPLICIT_JOIN_COLUMNS,
    REPORT_CATALOG,
    ColumnCatalog,
    ColumnDefinition,
    FilterOperator,
)
from app.reporting.exceptions import ReportValidationError
from app.reporting.schemas import ColumnFilter, ReportQuery, SortOrder, SortSpec

logger = logging.getLogger(__name__)

DEFAULT_SORT_FIELD = "created_at"
ARCHIVED_FIELD = "is_archived"


class PipelineBuilder:
    """
    Builds typed aggregation pipelines from validated report queries.

    The builder holds no per-request state; every call plans its own joins,
    so one instance can serve concurrent requests.
    """

    def __init__(
        self,
        catalog: ColumnCatalog = REPORT_CATALOG,
        display_columns: Sequence[str] = DEFAULT_DISPLAY_COLUMNS,
        implicit_columns: Sequence[str] = IMPLICIT_JOIN_COLUMNS,
    ):
        self.catalog = catalog
        self.planner = JoinPlanner(catalog)
        self.display_columns = tuple(display_columns)
        self.implicit_columns = tuple(implicit_columns)

    def build(self, query: ReportQuery) -> Pipeline:
        """Build the paginated pipeline: one page of rows plus the total count."""
        projection = self._build_projection()
        terminal = Facet(skip=query.skip, limit=query.limit, projection=projection)
        return self._build(query.filters, query.sort, query.exclude_archived, (), terminal)

    def build_for_export(self, query: ReportQuery, columns: Optional[Iterable[str]] = None) -> Pipeline:
        """Build the export pipeline: every matching row, projected, no pagination."""
        return self._build(
            query.filters, query.sort, query.exclude_archived, tuple(columns or ()), self._build_projection()
        )

    def plan_joins(
        self,
        filters: Sequence[ColumnFilter],
        sort: Sequence[SortSpec],
        extra_columns: Sequence[str] = (),
    ) -> JoinPlan:
        """Plan joins for every column the request touches, displays or implies."""
        referenced: List[str] = [f.column for f in filters]
        referenced.extend(s.column for s in sort)
        referenced.extend(self.display_columns)
        referenced.extend(self.implicit_columns)
        referenced.extend(extra_columns)
        return self.planner.plan(referenced)

    # ===== PIPELINE ASSEMBLY =====

    def _build(
        self,
        filters: Sequence[ColumnFilter],
        sort: Sequence[SortSpec],
        exclude_archived: bool,
        extra_columns: Sequence[str],
        terminal: Stage,
    ) -> Pipeline:
        plan = self.plan_joins(filters, sort, extra_columns)
        pre_filters, post_filters = self._split_filters(filters)

        stages: List[Stage] = []

        pre_match = self._build_pre_match(pre_filters, exclude_archived)
        if pre_match is not None:
            stages.append(pre_match)

        stages.extend(self._build_join_stages(plan))

        post_match = self._build_post_match(post_filters)
        if post_match is not None:
            stages.append(post_match)

        stages.append(self._build_sort(sort))
        stages.append(terminal)

        pipeline = Pipeline(tuple(stages))
        logger.debug("Built report pipeline with joins %s", pipeline.join_aliases)
        return pipeline

    def _split_filters(
        self, filters: Sequence[ColumnFilter]
    ) -> Tuple[List[Tuple[ColumnDefinition, ColumnFilter]], List[Tuple[ColumnDefinition, ColumnFilter]]]:
        pre: List[Tuple[ColumnDefinition, ColumnFilter]] = []
        post: List[Tuple[ColumnDefinition, ColumnFilter]] = []
        for flt in filters:
            col = self.catalog.get(flt.column)
            if col is None:
                # The validator runs first; reaching this means it was skipped
                raise ReportValidationError(f"Unknown column: {flt.column}")
            (post if col.requires_lookup else pre).append((col, flt))
        return pre, post

    def _build_pre_match(
        self, filters: List[Tuple[ColumnDefinition, ColumnFilter]], exclude_archived: bool
    ) -> Optional[PreMatch]:
        conditions: List[Condition] = []
        if exclude_archived:
            conditions.append({ARCHIVED_FIELD: False})
        conditions.extend(self.build_condition(col, flt) for col, flt in filters)
        if not conditions:
            return None
        return PreMatch(_merge_conditions(conditions))

    def _build_join_stages(self, plan: JoinPlan) -> List[Stage]:
        stages: List[Stage] = []
        for join in plan.joins:
            stages.append(Join(join))
            if join.alias in plan.eager_unwinds:
                stages.append(Unwind(join.alias))
        stages.extend(Unwind(alias) for alias in plan.deferred_unwinds)
        return stages

    def _build_post_match(self, filters: List[Tuple[ColumnDefinition, ColumnFilter]]) -> Optional[PostMatch]:
        conditions = tuple(self.build_condition(col, flt) for col, flt in filters)
        if not conditions:
            return None
        return PostMatch(conditions)

    def _build_sort(self, sort: Sequence[SortSpec]) -> Sort:
        keys: List[Tuple[str, int]] = []
        for spec in sort:
            col = self.catalog.get(spec.column)
            if col is None or not col.sortable:
                continue
            if any(path == col.field_path for path, _ in keys):
                continue
            keys.append((col.field_path, 1 if spec.order == SortOrder.ASC else -1))

        if not keys:
            keys.append((DEFAULT_SORT_FIELD, -1))

        # Tie-break on _id so pages stay stable between runs
        if all(path != "_id" for path, _ in keys):
            keys.append(("_id", keys[-1][1]))
        return Sort(tuple(keys))

    def _build_projection(self) -> Project:
        return Project(tuple(self.catalog.projection_paths()))

    # ===== CONDITIONS =====

    def build_condition(self, col: ColumnDefinition, flt: ColumnFilter) -> Condition:
        """Build the match condition for one filter on one column."""
        if col.is_virtual:
            return self._build_virtual_condition(col, flt)
        return {col.field_path: self._operator_expression(col, flt.operator, flt.value)}

    def _build_virtual_condition(self, col: ColumnDefinition, flt: ColumnFilter) -> Condition:
        """A filter on a virtual column matches when any of its concrete fields matches."""
        if flt.operator == FilterOperator.EQ:
            expression: Any = flt.value
        elif flt.operator == FilterOperator.IN:
            expression = {"$in": flt.value if isinstance(flt.value, list) else [flt.value]}
        elif flt.operator == FilterOperator.CONTAINS:
            expression = regex_condition(escape_regex(str(flt.value)))
        else:
            raise ReportValidationError(
                f"Operator '{flt.operator.value}' is not supported for column '{col.key}'"
            )
        return {"$or": [{path: expression} for path in col.virtual_fields]}

    def _operator_expression(self, col: ColumnDefinition, operator: FilterOperator, raw: Any) -> Any:
        value = coerce_value(col, raw, operator)

        if operator == FilterOperator.EQ:
            return value
        if operator == FilterOperator.NEQ:
            return {"$ne": value}
        if operator == FilterOperator.IN:
            return {"$in": value}
        if operator == FilterOperator.NIN:
            return {"$nin": value}
        if operator == FilterOperator.CONTAINS:
            return regex_condition(escape_regex(str(value)))
        if operator == FilterOperator.STARTS_WITH:
            return regex_condition(f"^{escape_regex(str(value))}")
        if operator == FilterOperator.ENDS_WITH:
            return regex_condition(f"{escape_regex(str(value))}$")
        if operator in (FilterOperator.GT, FilterOperator.AFTER):
            return {"$gt": value}
        if operator == FilterOperator.GTE:
            return {"$gte": value}
        if operator in (FilterOperator.LT, FilterOperator.BEFORE):
            return {"$lt": value}
        if operator == FilterOperator.LTE:
            return {"$lte": value}
        if operator == FilterOperator.BETWEEN:
            return {"$gte": value["from"], "$lte": value["to"]}
        if operator == FilterOperator.IS_NULL:
            # Matches both a missing field and an explicit null
            return None
        if operator == FilterOperator.IS_NOT_NULL:
            return {"$ne": None}
        raise ReportValidationError(f"Unsupported operator '{operator.value}' for column '{col.key}'")


def _merge_conditions(conditions: List[Condition]) -> Condition:
    """AND conditions together; plain merge unless two conditions share a field."""
    merged: Dict[str, Any] = {}
    for condition in conditions:
        if any(key in merged for key in condition):
            return {"$and": list(conditions)}
        merged.update(condition)
    return merged
