"""
Query module for the global report.

Main Components:
- PipelineBuilder: turns a validated report request into a typed pipeline
- JoinPlanner: minimal, dependency-ordered lookups for the referenced columns
- Pipeline and its stages: phase-checked, rendered to the store's list-of-dicts form
- MongoQueryExecutor: runs pipelines against the audit collection
"""

from .builder import PipelineBuilder
from .engine import MongoQueryExecutor, PaginatedResult, QueryExecutor
from .planner import JoinPlan, JoinPlanner
from .stages import Facet, Join, Pipeline, PipelineOrderError, PostMatch, PreMatch, Project, Sort, Unwind

__all__ = [
    # Main classes
    "PipelineBuilder",
    "JoinPlanner",
    "MongoQueryExecutor",
    # Core types
    "JoinPlan",
    "PaginatedResult",
    "QueryExecutor",
    "Pipeline",
    "PipelineOrderError",
    # Stages
    "PreMatch",
    "Join",
    "Unwind",
    "PostMatch",
    "Sort",
    "Project",
    "Facet",
]
