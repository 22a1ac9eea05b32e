"""Index backend interface shared by both strategies."""

from abc import ABC, abstractmethod

from workout_cache.filters import MetadataFilter
from workout_cache.index.models import RefreshPolicy, SearchResult


def normalize_score(raw: float) -> float:
    """Map a raw cosine similarity into [0, 1].

    Opposite vectors are no more useful to the cache than orthogonal ones,
    so negative similarity reads as 0.
    """
    return min(1.0, max(0.0, float(raw)))


def rank_results(results: list[SearchResult], limit: int) -> list[SearchResult]:
    """Order by descending score, then ascending item id, and truncate."""
    ordered = sorted(results, key=lambda r: (-r.score, r.item_id))
    return ordered[: max(limit, 0)]


class IndexBackend(ABC):
    """Abstract base class for index backends.

    Both strategies return results with the same ordering and score
    semantics so that the decision policy does not care which one ran.
    """

    name: str = "index"

    @property
    @abstractmethod
    def requires_query_vector(self) -> bool:
        """Whether ``search`` expects a precomputed vector instead of text."""
        ...

    @property
    def requires_stored_embeddings(self) -> bool:
        """Whether items must carry an embedding before they are stored."""
        return False

    @abstractmethod
    async def search(
        self,
        query: str | list[float],
        filters: MetadataFilter,
        limit: int,
    ) -> list[SearchResult]:
        """Search for items similar to the query.

        Args:
            query: Query text, or a query vector when ``requires_query_vector``.
            filters: Validated metadata constraints.
            limit: Maximum results to return.

        Returns:
            At most ``limit`` results, best first.

        Raises:
            InvalidQueryError: If the query cannot be evaluated as given.
            BackendUnavailableError: If the backend is overloaded or unreachable.
        """
        ...

    @abstractmethod
    def refresh_policy(self) -> RefreshPolicy:
        """Report the backend's consistency characteristics."""
        ...

    async def refresh(self) -> int:
        """Bring the index up to date with the store; returns items pushed."""
        return 0

    async def start(self) -> None:
        """Start background maintenance, if the backend has any."""
        return None

    async def close(self) -> None:
        """Stop background work and release resources."""
        return None
