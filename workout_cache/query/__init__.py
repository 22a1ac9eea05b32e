"""Query pipeline module."""

from workout_cache.query.models import Query, RankedResult
from workout_cache.query.pipeline import QueryPipeline

__all__ = [
    "Query",
    "QueryPipeline",
    "RankedResult",
]
