# app/query/engine.py
"""Query executor: runs built pipelines against the audit collection."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol

from pymongo.database import Database
from pymongo.errors import ExecutionTimeout, PyMongoError

from app.query.stages import Pipeline
from app.reporting.exceptions import ReportExecutionError

logger = logging.getLogger(__name__)

AUDIT_COLLECTION = "Audit"


@dataclass
class PaginatedResult:
    """One page of raw documents plus the total number of matches."""

    rows: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0


class QueryExecutor(Protocol):
    """Anything that can run a report pipeline. Swapped for fakes in tests."""

    def run_paginated(self, pipeline: Pipeline) -> PaginatedResult:
        ...

    def run_export(self, pipeline: Pipeline) -> List[Dict[str, Any]]:
        ...


class MongoQueryExecutor:
    """Executes pipelines with pymongo's aggregation framework."""

    def __init__(self, db: Database, timeout_ms: int = 30000, collection: str = AUDIT_COLLECTION):
        self.db = db
        self.timeout_ms = timeout_ms
        self.collection = collection

    def run_paginated(self, pipeline: Pipeline) -> PaginatedResult:
        if not pipeline.paginated:
            raise ValueError("run_paginated needs a pipeline ending in a Facet stage")

        documents = self._aggregate(pipeline)
        if not documents:
            return PaginatedResult()

        facet = documents[0]
        counts = facet.get("totalCount") or []
        total = counts[0].get("count", 0) if counts else 0
        return PaginatedResult(rows=list(facet.get("data") or []), total=total)

    def run_export(self, pipeline: Pipeline) -> List[Dict[str, Any]]:
        if pipeline.paginated:
            raise ValueError("run_export needs a pipeline ending in a Project stage")
        return self._aggregate(pipeline)

    def _aggregate(self, pipeline: Pipeline) -> List[Dict[str, Any]]:
        stages = pipeline.to_mongo()
        logger.debug("Running %d-stage pipeline on %s", len(stages), self.collection)
        try:
            cursor = self.db[self.collection].aggregate(stages, maxTimeMS=self.timeout_ms)
            return list(cursor)
        except ExecutionTimeout as e:
            logger.error("Report query timed out after %d ms", self.timeout_ms)
            raise ReportExecutionError(f"Report query timed out after {self.timeout_ms} ms") from e
        except PyMongoError as e:
            logger.error("Report query failed: %s", e)
            raise ReportExecutionError(f"Failed to fetch report data: {e}") from e
