"""Join planning: which lookups a report needs, in which order, and which unwind early."""

from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Tuple

from app.reporting.column_registry import REPORT_CATALOG, ColumnCatalog, JoinSpec


@dataclass(frozen=True)
class JoinPlan:
    """Ordered joins plus the aliases a later join keys off (unwound right after their join)."""

    joins: Tuple[JoinSpec, ...]
    eager_unwinds: FrozenSet[str]

    @property
    def aliases(self) -> List[str]:
        return [join.alias for join in self.joins]

    @property
    def deferred_unwinds(self) -> List[str]:
        return [join.alias for join in self.joins if join.alias not in self.eager_unwinds]


class JoinPlanner:
    """Computes the minimal, dependency-ordered join set for a set of columns."""

    def __init__(self, catalog: ColumnCatalog = REPORT_CATALOG):
        self.catalog = catalog

    def plan(self, column_keys: Iterable[str]) -> JoinPlan:
        selected = {join.alias for join in self.catalog.required_joins_for(column_keys)}

        # Pull in anything a selected join keys off, even if no column listed it
        pending = list(selected)
        while pending:
            join = self.catalog.join(pending.pop())
            dep = join.depends_on if join is not None else None
            if dep is not None and self.catalog.join(dep) is not None and dep not in selected:
                selected.add(dep)
                pending.append(dep)

        joins = tuple(join for join in self.catalog.join_order if join.alias in selected)
        eager = frozenset(join.depends_on for join in joins if join.depends_on in selected)
        return JoinPlan(joins=joins, eager_unwinds=eager)
