"""
Typed aggregation pipeline stages.

A pipeline is a tuple of stage variants rather than free-form dictionaries.
``Pipeline`` checks the phase order when it is constructed, so a pipeline
that filters on a joined field before the join exists cannot be built.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Tuple, Union

from app.reporting.column_registry import JoinSpec

Condition = Dict[str, Any]


@dataclass(frozen=True)
class PreMatch:
    """Filter on audit fields before any lookup runs."""

    condition: Mapping[str, Any]

    phase = 0

    def to_mongo(self) -> Dict[str, Any]:
        return {"$match": dict(self.condition)}


@dataclass(frozen=True)
class Join:
    """Attach a related document array under the join's alias."""

    spec: JoinSpec

    phase = 1

    def to_mongo(self) -> Dict[str, Any]:
        return {
            "$lookup": {
                "from": self.spec.source_collection,
                "localField": self.spec.local_field,
                "foreignField": self.spec.foreign_field,
                "as": self.spec.alias,
            }
        }


@dataclass(frozen=True)
class Unwind:
    """Flatten a single-element join result; unmatched joins leave the field absent."""

    alias: str

    phase = 1

    def to_mongo(self) -> Dict[str, Any]:
        return {"$unwind": {"path": f"${self.alias}", "preserveNullAndEmptyArrays": True}}


@dataclass(frozen=True)
class PostMatch:
    """Filter on joined fields; every condition must hold."""

    conditions: Tuple[Mapping[str, Any], ...]

    phase = 2

    def to_mongo(self) -> Dict[str, Any]:
        return {"$match": {"$and": [dict(c) for c in self.conditions]}}


@dataclass(frozen=True)
class Sort:
    """Multi-key sort; keys are (field path, 1 | -1) in priority order."""

    keys: Tuple[Tuple[str, int], ...]

    phase = 3

    def to_mongo(self) -> Dict[str, Any]:
        return {"$sort": {path: direction for path, direction in self.keys}}


@dataclass(frozen=True)
class Project:
    """Keep only the listed document paths."""

    paths: Tuple[str, ...]

    phase = 4

    def spec(self) -> Dict[str, int]:
        return {path: 1 for path in self.paths}

    def to_mongo(self) -> Dict[str, Any]:
        return {"$project": self.spec()}


@dataclass(frozen=True)
class Facet:
    """One page of projected rows and the total match count in a single pass."""

    skip: int
    limit: int
    projection: Project

    phase = 4

    def to_mongo(self) -> Dict[str, Any]:
        return {
            "$facet": {
                "data": [
                    {"$skip": self.skip},
                    {"$limit": self.limit},
                    self.projection.to_mongo(),
                ],
                "totalCount": [{"$count": "count"}],
            }
        }


Stage = Union[PreMatch, Join, Unwind, PostMatch, Sort, Project, Facet]


class PipelineOrderError(ValueError):
    """Stages were supplied in an order the store cannot evaluate correctly."""


@dataclass(frozen=True)
class Pipeline:
    """Ordered, immutable sequence of stages."""

    stages: Tuple[Stage, ...]

    def __post_init__(self) -> None:
        if not self.stages:
            raise PipelineOrderError("A pipeline needs at least a terminal stage")

        last_phase = -1
        joined: List[str] = []
        unwound: List[str] = []
        for index, stage in enumerate(self.stages):
            if stage.phase < last_phase:
                raise PipelineOrderError(
                    f"{type(stage).__name__} at position {index} appears after a later phase"
                )
            last_phase = stage.phase

            if isinstance(stage, Join):
                if stage.spec.alias in joined:
                    raise PipelineOrderError(f"Join '{stage.spec.alias}' appears twice")
                dep = stage.spec.depends_on
                if dep is not None and dep not in unwound:
                    raise PipelineOrderError(
                        f"Join '{stage.spec.alias}' needs '{dep}' joined and unwound first"
                    )
                joined.append(stage.spec.alias)
            elif isinstance(stage, Unwind):
                if stage.alias not in joined:
                    raise PipelineOrderError(f"Unwind '{stage.alias}' has no preceding join")
                if stage.alias in unwound:
                    raise PipelineOrderError(f"Alias '{stage.alias}' is unwound twice")
                unwound.append(stage.alias)
            elif isinstance(stage, (Facet, Project)) and index != len(self.stages) - 1:
                raise PipelineOrderError(f"{type(stage).__name__} must be the final stage")

        if not isinstance(self.stages[-1], (Facet, Project)):
            raise PipelineOrderError("A pipeline must end with a Facet or Project stage")

    @property
    def paginated(self) -> bool:
        return isinstance(self.stages[-1], Facet)

    @property
    def join_aliases(self) -> List[str]:
        return [stage.spec.alias for stage in self.stages if isinstance(stage, Join)]

    def stages_of(self, kind: type) -> List[Stage]:
        return [stage for stage in self.stages if isinstance(stage, kind)]

    def to_mongo(self) -> List[Dict[str, Any]]:
        """Render into the store's list-of-dicts form."""
        return [stage.to_mongo() for stage in self.stages]
