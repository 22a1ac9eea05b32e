"""Query pipeline: validate, embed, search, rank and label."""

import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from workout_cache.config import CacheSettings, get_settings
from workout_cache.decision.policy import DecisionPolicy
from workout_cache.embeddings.service import EmbeddingService, embed_with_timeout
from workout_cache.exceptions import (
    BackendUnavailableError,
    ConfigurationError,
    ErrorCode,
)
from workout_cache.filters import MetadataFilter, parse_filters
from workout_cache.index.base import IndexBackend, rank_results
from workout_cache.index.models import SearchResult
from workout_cache.logging_config import get_logger
from workout_cache.observability.metrics import track_search_request
from workout_cache.query.models import Query, RankedResult
from workout_cache.retry import call_with_timeout, retry_async

logger = get_logger(__name__)

T = TypeVar("T")


class QueryPipeline:
    """Turns a Query into ranked, labelled candidates.

    The pipeline holds no mutable state and is safe to call concurrently.
    Transient embedding and search failures are retried here; when the
    primary backend stays unavailable and a fallback is configured, the
    query is answered by the fallback instead.
    """

    def __init__(
        self,
        backend: IndexBackend,
        policy: DecisionPolicy,
        embedding_service: EmbeddingService | None = None,
        settings: CacheSettings | None = None,
        fallback: IndexBackend | None = None,
    ) -> None:
        """Initialize the query pipeline.

        Args:
            backend: Primary index backend.
            policy: Decision policy applied to every score.
            embedding_service: Provider for query vectors; required when any
                backend needs a precomputed vector.
            settings: Timeouts and retry configuration.
            fallback: Backend used when the primary is unavailable.
        """
        for candidate in (backend, fallback):
            if candidate is not None and candidate.requires_query_vector and embedding_service is None:
                raise ConfigurationError(
                    f"Backend {candidate.name!r} needs an embedding service",
                    details={"backend": candidate.name},
                )
        self._backend = backend
        self._fallback = fallback
        self._policy = policy
        self._embedding = embedding_service
        self._settings = settings or get_settings().cache

    @property
    def backend(self) -> IndexBackend:
        return self._backend

    async def run(self, query: Query) -> list[RankedResult]:
        """Execute a query.

        Args:
            query: The lookup request.

        Returns:
            Candidates ordered by descending score, then ascending item id.

        Raises:
            InvalidQueryError: If filters do not fit the metadata schema.
            EmbeddingUnavailableError: If the query could not be embedded.
            BackendUnavailableError: If no backend could answer.
        """
        filters = parse_filters(query.filters)

        if query.limit == 0 or not query.text.strip():
            return []

        try:
            results = await self._search(self._backend, query.text, filters, query.limit)
        except BackendUnavailableError as e:
            if self._fallback is None:
                raise
            logger.warning(
                f"Backend {self._backend.name} unavailable, using {self._fallback.name}",
                extra={"error_code": e.code.value},
            )
            results = await self._search(self._fallback, query.text, filters, query.limit)

        ranked = self._label(results, query.min_score)

        logger.debug(
            f"Query returned {len(ranked)} candidates",
            extra={
                "query_length": len(query.text),
                "limit": query.limit,
                "results_count": len(ranked),
            },
        )
        return ranked

    async def _search(
        self,
        backend: IndexBackend,
        text: str,
        filters: MetadataFilter,
        limit: int,
    ) -> list[SearchResult]:
        query_input: str | list[float] = text
        if backend.requires_query_vector:
            query_input = await self._with_retry(lambda: self._embed_query(text))
        return await self._with_retry(
            lambda: self._search_once(backend, query_input, filters, limit)
        )

    async def _with_retry(self, func: Callable[[], Awaitable[T]]) -> T:
        return await retry_async(
            func,
            max_attempts=self._settings.max_attempts,
            max_wait=self._settings.retry_max_wait,
        )

    async def _embed_query(self, text: str) -> list[float]:
        if self._embedding is None:
            raise ConfigurationError("Query embedding requested without a provider")
        return await embed_with_timeout(
            self._embedding, text, self._settings.embedding_timeout
        )

    async def _search_once(
        self,
        backend: IndexBackend,
        query_input: str | list[float],
        filters: MetadataFilter,
        limit: int,
    ) -> list[SearchResult]:
        timeout = self._settings.search_timeout
        start = time.perf_counter()
        try:
            results = await call_with_timeout(
                lambda: backend.search(query_input, filters, limit),
                timeout,
                on_timeout=lambda: BackendUnavailableError(
                    f"Search on {backend.name} timed out after {timeout}s",
                    code=ErrorCode.BACKEND_TIMEOUT,
                    details={"backend": backend.name, "timeout": timeout},
                ),
            )
        except BackendUnavailableError:
            track_search_request(backend.name, time.perf_counter() - start, 0, 0.0, success=False)
            raise

        track_search_request(
            backend.name,
            time.perf_counter() - start,
            len(results),
            max((r.score for r in results), default=0.0),
        )
        return rank_results(results, limit)

    def _label(
        self,
        results: list[SearchResult],
        min_score: float | None,
    ) -> list[RankedResult]:
        return [
            RankedResult(
                item_id=r.item_id,
                score=r.score,
                decision=self._policy.decide(r.score),
                item=r.item,
            )
            for r in results
            if min_score is None or r.score >= min_score
        ]
