"""Direct vector index: brute-force cosine similarity over stored embeddings."""

import asyncio

import numpy as np

from workout_cache.exceptions import ErrorCode, InvalidQueryError
from workout_cache.filters import MetadataFilter
from workout_cache.index.base import IndexBackend, normalize_score, rank_results
from workout_cache.index.models import Consistency, RefreshPolicy, SearchResult
from workout_cache.items.models import Item
from workout_cache.items.store import ItemStore
from workout_cache.logging_config import get_logger

logger = get_logger(__name__)


class DirectVectorIndex(IndexBackend):
    """Similarity search computed on every query.

    Embeddings live on the items themselves, so any completed ``put`` is
    immediately searchable. Each query scores the full filtered candidate
    set; cost grows with the number of stored items.
    """

    name = "direct"

    def __init__(self, store: ItemStore, dimensions: int | None = None) -> None:
        """Initialize the direct index.

        Args:
            store: Item store holding embedded items.
            dimensions: Expected vector length. Checked on every query if set.
        """
        self._store = store
        self._dimensions = dimensions

    @property
    def requires_query_vector(self) -> bool:
        return True

    @property
    def requires_stored_embeddings(self) -> bool:
        return True

    def refresh_policy(self) -> RefreshPolicy:
        return RefreshPolicy(consistency=Consistency.SYNCHRONOUS, target_lag_seconds=0.0)

    async def search(
        self,
        query: str | list[float],
        filters: MetadataFilter,
        limit: int,
    ) -> list[SearchResult]:
        """Score every filtered item against the query vector."""
        if isinstance(query, str):
            raise InvalidQueryError(
                "Direct vector index requires a precomputed query vector",
                details={"backend": self.name},
            )
        if limit <= 0:
            return []

        query_vector = np.asarray(query, dtype=np.float64)
        self._check_dimensions(len(query_vector), self._dimensions, "configured")

        candidates: list[Item] = []
        async for item in self._store.list(filters):
            if item.embedding is None or not item.is_searchable:
                continue
            self._check_dimensions(len(item.embedding), len(query_vector), item.id)
            candidates.append(item)

        if not candidates:
            return []

        # Off-loop so timeouts can fire and other reads keep running.
        scores = await asyncio.to_thread(
            cosine_similarity,
            query_vector,
            [item.embedding for item in candidates],
        )

        results = [
            SearchResult(item_id=item.id, score=normalize_score(score), item=item)
            for item, score in zip(candidates, scores, strict=True)
        ]

        logger.debug(
            "Direct search scored candidates",
            extra={"candidates": len(candidates), "limit": limit},
        )
        return rank_results(results, limit)

    def _check_dimensions(self, actual: int, expected: int | None, source: str) -> None:
        if expected is None or actual == expected:
            return
        raise InvalidQueryError(
            f"Vector dimension mismatch: got {actual}, expected {expected}",
            code=ErrorCode.DIMENSION_MISMATCH,
            details={"actual": actual, "expected": expected, "source": source},
        )


def cosine_similarity(
    query: np.ndarray,
    vectors: np.ndarray | list[list[float]],
) -> np.ndarray:
    """Cosine similarity between ``query`` and each row of ``vectors``.

    Zero vectors have similarity 0 with everything.
    """
    matrix = np.asarray(vectors, dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    return np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)
