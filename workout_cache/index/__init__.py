"""Index backend module."""

from workout_cache.index.base import IndexBackend
from workout_cache.index.direct import DirectVectorIndex
from workout_cache.index.managed import ManagedSearchIndex
from workout_cache.index.models import Consistency, RefreshPolicy, SearchResult

__all__ = [
    "Consistency",
    "DirectVectorIndex",
    "IndexBackend",
    "ManagedSearchIndex",
    "RefreshPolicy",
    "SearchResult",
]
