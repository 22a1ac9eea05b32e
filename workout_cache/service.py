"""Cache facade used by the API and by callers embedding the library.

Wires the item store, embedding provider, index backends and pipelines
from Settings, and turns pipeline results into cache lookups.
"""

import asyncio
import copy
import time
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from workout_cache.config import BackendKind, Settings, get_settings
from workout_cache.decision.policy import CacheDecision, DecisionPolicy
from workout_cache.embeddings.service import EmbeddingService, HTTPEmbeddingService
from workout_cache.exceptions import (
    ItemNotFoundError,
    ValidationError,
    WorkoutCacheError,
)
from workout_cache.index.base import IndexBackend
from workout_cache.index.direct import DirectVectorIndex
from workout_cache.index.managed import ManagedSearchIndex
from workout_cache.index.models import RefreshPolicy
from workout_cache.ingestion.models import EmbeddingCoverage, IngestResult, SegmentStats
from workout_cache.ingestion.pipeline import IngestionPipeline
from workout_cache.items.models import Item
from workout_cache.items.store import InMemoryItemStore, ItemStore
from workout_cache.logging_config import get_logger
from workout_cache.observability.metrics import track_cache_lookup, track_fail_open
from workout_cache.query.models import Query, RankedResult
from workout_cache.query.pipeline import QueryPipeline

logger = get_logger(__name__)


class CachedWorkout(BaseModel):
    """One candidate returned by a lookup."""

    item_id: str = Field(description="Item identifier")
    score: float = Field(ge=0.0, le=1.0, description="Similarity score")
    decision: CacheDecision = Field(description="Decision for this candidate")
    item_payload: dict[str, Any] = Field(description="Stored workout document")


class CacheLookup(BaseModel):
    """Outcome of a cache lookup.

    Attributes:
        query: The normalized request.
        decision: Best decision across the candidates.
        is_hit: Whether the best candidate may be reused.
        results: Candidates, best first.
        degraded: True when a dependency failed and the lookup fell back to MISS.
        error_code: Code of the failure behind a degraded lookup.
    """

    query: Query
    decision: CacheDecision
    is_hit: bool
    results: list[CachedWorkout] = Field(default_factory=list)
    degraded: bool = False
    error_code: str | None = None


def item_payload(item: Item) -> dict[str, Any]:
    """Document returned to callers for a matched item."""
    if item.raw_payload is not None:
        return copy.deepcopy(item.raw_payload)
    return item.model_dump(mode="json", exclude={"embedding", "raw_payload"})


class CacheService:
    """Semantic cache for generated workouts.

    ``find_cached`` fails open: once retries are exhausted on a transient
    failure the lookup is reported as a degraded MISS so the caller can
    generate a fresh workout. Invalid requests still raise.
    """

    def __init__(
        self,
        store: ItemStore,
        query_pipeline: QueryPipeline,
        ingestion_pipeline: IngestionPipeline,
        policy: DecisionPolicy,
        backends: list[IndexBackend],
        embedding_service: EmbeddingService | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            store: Item store shared by the pipelines.
            query_pipeline: Lookup path.
            ingestion_pipeline: Write path.
            policy: Decision policy used for the overall decision.
            backends: Every backend the service started; closed on shutdown.
            embedding_service: Provider closed on shutdown, if any.
            settings: Application settings.
        """
        self._store = store
        self._queries = query_pipeline
        self._ingestion = ingestion_pipeline
        self._policy = policy
        self._backends = backends
        self._embedding = embedding_service
        self._settings = settings or get_settings()
        self._semaphore = asyncio.Semaphore(self._settings.cache.max_concurrent_queries)

    @property
    def backend_name(self) -> str:
        return self._queries.backend.name

    async def find_cached(
        self,
        text: str,
        filters: Mapping[str, Any] | None = None,
        limit: int | None = None,
        min_score: float | None = None,
    ) -> CacheLookup:
        """Look up cached workouts similar to ``text``.

        Args:
            text: Natural-language workout request.
            filters: Metadata constraints; a scalar means equality, a list
                means membership, a dict holds ``eq``/``in``/``gte``/``lte``.
            limit: Maximum candidates. Defaults to ``cache.default_limit``.
            min_score: Drop candidates scoring below this.

        Returns:
            CacheLookup with the best decision and ranked candidates.

        Raises:
            ValidationError: If the request fields are malformed.
            InvalidQueryError: If filters do not fit the metadata schema.
        """
        query = self._build_query(text, filters, limit, min_score)

        start = time.perf_counter()
        async with self._semaphore:
            try:
                ranked = await self._queries.run(query)
            except WorkoutCacheError as e:
                if not e.retryable:
                    raise
                return self._fail_open(query, e, start)

        lookup = self._to_lookup(query, ranked)
        track_cache_lookup(self.backend_name, lookup.decision.value, time.perf_counter() - start)
        logger.info(
            f"Cache lookup: {lookup.decision.value}",
            extra={
                "backend": self.backend_name,
                "results_count": len(lookup.results),
                "top_score": lookup.results[0].score if lookup.results else None,
            },
        )
        return lookup

    def _build_query(
        self,
        text: str,
        filters: Mapping[str, Any] | None,
        limit: int | None,
        min_score: float | None,
    ) -> Query:
        try:
            return Query(
                text=text,
                filters=dict(filters or {}),
                limit=self._settings.cache.default_limit if limit is None else limit,
                min_score=min_score,
            )
        except PydanticValidationError as e:
            errors = e.errors(include_url=False, include_context=False, include_input=False)
            raise ValidationError(
                "Invalid lookup request",
                details={"errors": errors},
            ) from e

    def _to_lookup(self, query: Query, ranked: list[RankedResult]) -> CacheLookup:
        decision = self._policy.best([r.score for r in ranked])
        return CacheLookup(
            query=query,
            decision=decision,
            is_hit=decision.is_hit,
            results=[
                CachedWorkout(
                    item_id=r.item_id,
                    score=r.score,
                    decision=r.decision,
                    item_payload=item_payload(r.item),
                )
                for r in ranked
            ],
        )

    def _fail_open(self, query: Query, error: WorkoutCacheError, start: float) -> CacheLookup:
        track_fail_open(error.code.value)
        track_cache_lookup(
            self.backend_name,
            CacheDecision.MISS.value,
            time.perf_counter() - start,
        )
        logger.warning(
            f"Cache lookup degraded to miss: {error.message}",
            extra={"backend": self.backend_name, "error_code": error.code.value},
        )
        return CacheLookup(
            query=query,
            decision=CacheDecision.MISS,
            is_hit=False,
            degraded=True,
            error_code=error.code.value,
        )

    async def store(self, item: Item) -> IngestResult:
        """Store a new or updated workout. Errors propagate to the caller."""
        return await self._ingestion.ingest(item)

    async def get_item(self, item_id: str) -> Item:
        """Fetch a stored workout.

        Raises:
            ItemNotFoundError: If no item has this id.
        """
        item = await self._store.get(item_id)
        if item is None:
            raise ItemNotFoundError(
                f"Workout not found: {item_id}",
                details={"item_id": item_id},
            )
        return item

    def refresh_policy(self) -> RefreshPolicy:
        """Consistency of the active backend."""
        return self._queries.backend.refresh_policy()

    async def coverage(self) -> EmbeddingCoverage:
        return await self._ingestion.coverage()

    async def distribution(self) -> list[SegmentStats]:
        """Stored workouts per sport type and difficulty."""
        return await self._ingestion.distribution()

    async def score_bands(
        self,
        text: str,
        filters: Mapping[str, Any] | None = None,
    ) -> dict[str, int]:
        """Count how many stored workouts fall in each decision band for ``text``.

        Unlike ``find_cached`` this does not fail open; errors propagate.
        Items the backend cannot score yet are not counted.
        """
        total = await self._store.count()
        query = self._build_query(text, filters, total, None)
        ranked = await self._queries.run(query)
        bands = {decision.value: 0 for decision in CacheDecision}
        for result in ranked:
            bands[result.decision.value] += 1
        return bands

    async def refresh(self) -> int:
        """Run one refresh cycle on every backend now."""
        total = 0
        for backend in self._backends:
            total += await backend.refresh()
        return total

    async def start(self) -> None:
        """Start background work (the managed index refresh loop)."""
        for backend in self._backends:
            await backend.start()

    async def close(self) -> None:
        """Stop backends and release clients."""
        for backend in self._backends:
            await backend.close()
        if self._embedding is not None:
            await self._embedding.close()


def _create_backend(
    kind: BackendKind,
    store: ItemStore,
    embedding_service: EmbeddingService,
    settings: Settings,
) -> IndexBackend:
    if kind is BackendKind.MANAGED:
        return ManagedSearchIndex(
            store,
            embedding_service,
            target_lag=settings.cache.target_lag,
            settings=settings.qdrant,
        )
    return DirectVectorIndex(store, dimensions=embedding_service.dimensions)


def build_cache_service(
    settings: Settings | None = None,
    store: ItemStore | None = None,
    embedding_service: EmbeddingService | None = None,
) -> CacheService:
    """Assemble a CacheService from configuration.

    Args:
        settings: Application settings. Loaded from the environment if omitted.
        store: Item store. An in-memory store is used if omitted.
        embedding_service: Embedding provider. The HTTP provider if omitted.

    Returns:
        A service that has not been started yet.
    """
    settings = settings or get_settings()
    store = store or InMemoryItemStore()
    embedding_service = embedding_service or HTTPEmbeddingService(settings.embedding)

    primary = _create_backend(settings.cache.backend, store, embedding_service, settings)
    backends = [primary]
    fallback: IndexBackend | None = None
    fallback_kind = settings.cache.fallback_backend
    if fallback_kind is not None and fallback_kind is not settings.cache.backend:
        fallback = _create_backend(fallback_kind, store, embedding_service, settings)
        backends.append(fallback)

    policy = DecisionPolicy(settings.similarity)
    query_pipeline = QueryPipeline(
        primary,
        policy,
        embedding_service=embedding_service,
        settings=settings.cache,
        fallback=fallback,
    )
    ingestion_pipeline = IngestionPipeline(
        store,
        backends,
        embedding_service=embedding_service,
        settings=settings.cache,
    )

    logger.info(
        "Cache service configured",
        extra={
            "backend": primary.name,
            "fallback": fallback.name if fallback else None,
            "embedding_model": embedding_service.model_name,
        },
    )
    return CacheService(
        store,
        query_pipeline,
        ingestion_pipeline,
        policy,
        backends,
        embedding_service=embedding_service,
        settings=settings,
    )
