"""Managed search index backed by Qdrant.

The index owns embedding generation: it embeds query text itself and keeps
its own vectors up to date with a background refresh loop. Writes to the
item store become searchable within the target lag, not immediately.
"""

import asyncio
import contextlib
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import NAMESPACE_URL, uuid5

from qdrant_client import AsyncQdrantClient
from qdrant_client.http.exceptions import UnexpectedResponse
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    MatchAny,
    MatchValue,
    PointStruct,
    VectorParams,
)
from qdrant_client.models import Range as QdrantRange

from workout_cache.config import QdrantSettings, get_settings
from workout_cache.embeddings.service import EmbeddingService
from workout_cache.exceptions import (
    BackendUnavailableError,
    ErrorCode,
    InvalidQueryError,
    ProviderError,
    WorkoutCacheError,
)
from workout_cache.filters import Equals, MetadataFilter, OneOf, Range
from workout_cache.index.base import IndexBackend, normalize_score, rank_results
from workout_cache.index.models import Consistency, RefreshPolicy, SearchResult
from workout_cache.items.models import Item
from workout_cache.items.store import ItemStore
from workout_cache.logging_config import get_logger
from workout_cache.observability.metrics import track_refresh

logger = get_logger(__name__)

UPSERT_BATCH_SIZE = 256


def point_id(item_id: str) -> str:
    """Stable Qdrant point id for an item id."""
    return str(uuid5(NAMESPACE_URL, f"workout:{item_id}"))


def to_qdrant_filter(filters: MetadataFilter) -> Filter | None:
    """Translate validated constraints into a Qdrant payload filter."""
    if filters.is_empty:
        return None

    conditions: list[FieldCondition] = []
    for constraint in filters.constraints:
        if isinstance(constraint, Equals):
            conditions.append(
                FieldCondition(
                    key=constraint.attribute,
                    match=MatchValue(value=constraint.value),  # type: ignore[arg-type]
                )
            )
        elif isinstance(constraint, OneOf):
            conditions.append(
                FieldCondition(
                    key=constraint.attribute,
                    match=MatchAny(any=constraint.values),  # type: ignore[arg-type]
                )
            )
        elif isinstance(constraint, Range):
            conditions.append(
                FieldCondition(
                    key=constraint.attribute,
                    range=QdrantRange(gte=constraint.gte, lte=constraint.lte),
                )
            )
    return Filter(must=conditions)  # type: ignore[arg-type]


@dataclass
class _IndexedEntry:
    """What the index last uploaded for an item."""

    text: str
    metadata: dict[str, Any]
    vector: list[float]


class ManagedSearchIndex(IndexBackend):
    """Qdrant collection kept in sync with the item store.

    A refresh cycle scans the store, re-embeds items whose text changed and
    re-uploads items whose metadata changed with their previous vector. The
    background loop runs a cycle every half target lag so that any completed
    write is searchable within the target lag.
    """

    name = "managed"

    def __init__(
        self,
        store: ItemStore,
        embedding_service: EmbeddingService,
        target_lag: float = 60.0,
        settings: QdrantSettings | None = None,
        client: AsyncQdrantClient | None = None,
    ) -> None:
        """Initialize the managed index.

        Args:
            store: Item store to mirror.
            embedding_service: Embedding provider owned by the index.
            target_lag: Staleness bound in seconds.
            settings: Qdrant configuration.
            client: Existing client (for testing).
        """
        self._store = store
        self._embedding = embedding_service
        self._target_lag = target_lag
        self._settings = settings or get_settings().qdrant
        self._client = client
        self._owns_client = client is None
        self._collection_ready = False
        self._indexed: dict[str, _IndexedEntry] = {}
        self._last_refreshed_at: datetime | None = None
        self._refresh_lock = asyncio.Lock()
        self._collection_lock = asyncio.Lock()
        self._refresh_task: asyncio.Task[None] | None = None

    @property
    def collection(self) -> str:
        return self._settings.collection_name

    @property
    def requires_query_vector(self) -> bool:
        return False

    @property
    def refresh_interval(self) -> float:
        return self._target_lag / 2

    def refresh_policy(self) -> RefreshPolicy:
        return RefreshPolicy(
            consistency=Consistency.EVENTUAL,
            target_lag_seconds=self._target_lag,
            last_refreshed_at=self._last_refreshed_at,
        )

    async def _get_client(self) -> AsyncQdrantClient:
        """Get or create Qdrant client."""
        if self._client is None:
            if self._settings.url == ":memory:":
                self._client = AsyncQdrantClient(location=":memory:")
            else:
                api_key = None
                if self._settings.api_key:
                    api_key = self._settings.api_key.get_secret_value()
                self._client = AsyncQdrantClient(url=self._settings.url, api_key=api_key)
        return self._client

    async def ensure_collection(self) -> None:
        """Create the collection on first use."""
        if self._collection_ready:
            return

        async with self._collection_lock:
            if self._collection_ready:
                return
            await self._create_collection()
            self._collection_ready = True

    async def _create_collection(self) -> None:
        client = await self._get_client()
        try:
            if not await client.collection_exists(self.collection):
                await client.create_collection(
                    collection_name=self.collection,
                    vectors_config=VectorParams(
                        size=self._embedding.dimensions,
                        distance=Distance.COSINE,
                    ),
                )
                logger.info(
                    f"Created collection: {self.collection}",
                    extra={"dimensions": self._embedding.dimensions},
                )
        except Exception as e:
            raise BackendUnavailableError(
                f"Failed to prepare collection: {e}",
                details={"collection": self.collection, "error": str(e)},
            ) from e

    async def search(
        self,
        query: str | list[float],
        filters: MetadataFilter,
        limit: int,
    ) -> list[SearchResult]:
        """Embed the query text and search the collection."""
        if not isinstance(query, str):
            raise InvalidQueryError(
                "Managed search index embeds query text itself; pass text",
                details={"backend": self.name},
            )
        if limit <= 0:
            return []

        await self.ensure_collection()

        try:
            embedding = await self._embedding.embed(query)
        except ProviderError as e:
            raise BackendUnavailableError(
                f"Managed index could not embed query: {e.message}",
                details={"collection": self.collection, "cause": e.code.value},
            ) from e

        client = await self._get_client()
        try:
            response = await client.query_points(
                collection_name=self.collection,
                query=embedding.embedding,
                limit=limit,
                query_filter=to_qdrant_filter(filters),
                with_payload=True,
            )
        except UnexpectedResponse as e:
            raise self._map_response_error(e) from e
        except Exception as e:
            raise BackendUnavailableError(
                f"Failed to search: {e}",
                details={"collection": self.collection, "error": str(e)},
            ) from e

        results: list[SearchResult] = []
        for point in response.points:
            payload = point.payload or {}
            item_id = payload.get("item_id")
            if item_id is None:
                continue
            item = await self._store.get(item_id)
            # The collection can lag the store; check the live metadata.
            if item is None or not filters.matches(item.metadata):
                continue
            score = point.score if point.score is not None else 0.0
            results.append(
                SearchResult(item_id=item_id, score=normalize_score(score), item=item)
            )

        return rank_results(results, limit)

    def _map_response_error(self, e: UnexpectedResponse) -> WorkoutCacheError:
        status = e.status_code
        details = {"collection": self.collection, "status_code": status}
        if status in (400, 422):
            return InvalidQueryError(
                f"Managed index rejected the query: {e}",
                details=details,
            )
        if status == 429:
            return BackendUnavailableError(
                "Managed index is throttling requests",
                code=ErrorCode.BACKEND_THROTTLED,
                details=details,
            )
        return BackendUnavailableError(
            f"Managed index returned {status}",
            details=details,
        )

    async def refresh(self) -> int:
        """Run one refresh cycle.

        Returns:
            Number of items pushed to the collection.

        Raises:
            ProviderError: If re-embedding changed items fails.
            BackendUnavailableError: If the collection cannot be updated.
        """
        async with self._refresh_lock:
            start = time.perf_counter()
            try:
                reembedded, metadata_only = await self._refresh_once()
            except Exception:
                track_refresh(time.perf_counter() - start, 0, 0, success=False)
                raise

            self._last_refreshed_at = datetime.now(UTC)
            track_refresh(time.perf_counter() - start, reembedded, metadata_only)
            if reembedded or metadata_only:
                logger.info(
                    "Managed index refreshed",
                    extra={"reembedded": reembedded, "metadata_only": metadata_only},
                )
            return reembedded + metadata_only

    async def _refresh_once(self) -> tuple[int, int]:
        await self.ensure_collection()

        changed_text: list[Item] = []
        changed_metadata: list[Item] = []
        async for item in self._store.list():
            if not item.is_searchable:
                continue
            indexed = self._indexed.get(item.id)
            if indexed is None or indexed.text != item.text:
                changed_text.append(item)
            elif indexed.metadata != item.metadata.model_dump():
                changed_metadata.append(item)

        vectors: dict[str, list[float]] = {}
        to_embed: list[Item] = []
        for item in changed_text:
            if item.embedding is not None and item.embedding_model == self._embedding.model_name:
                vectors[item.id] = item.embedding
            else:
                to_embed.append(item)
        if to_embed:
            embedded = await self._embedding.embed_batch([i.text for i in to_embed])
            for item, result in zip(to_embed, embedded, strict=True):
                vectors[item.id] = result.embedding
        for item in changed_metadata:
            vectors[item.id] = self._indexed[item.id].vector

        pending = changed_text + changed_metadata
        for i in range(0, len(pending), UPSERT_BATCH_SIZE):
            batch = pending[i : i + UPSERT_BATCH_SIZE]
            await self._upsert(batch, vectors)
            for item in batch:
                self._indexed[item.id] = _IndexedEntry(
                    text=item.text,
                    metadata=item.metadata.model_dump(),
                    vector=vectors[item.id],
                )

        return len(changed_text), len(changed_metadata)

    async def _upsert(self, items: list[Item], vectors: dict[str, list[float]]) -> None:
        client = await self._get_client()
        points = [
            PointStruct(
                id=point_id(item.id),
                vector=vectors[item.id],
                payload={
                    "item_id": item.id,
                    "text": item.text,
                    **item.metadata.model_dump(exclude_none=True),
                },
            )
            for item in items
        ]
        try:
            await client.upsert(collection_name=self.collection, points=points)
        except Exception as e:
            raise BackendUnavailableError(
                f"Failed to upsert points: {e}",
                details={"collection": self.collection, "error": str(e)},
            ) from e
        logger.debug(
            f"Upserted {len(points)} points",
            extra={"collection": self.collection},
        )

    async def start(self) -> None:
        """Start the background refresh loop."""
        if self._refresh_task is not None and not self._refresh_task.done():
            return
        self._refresh_task = asyncio.create_task(
            self._refresh_loop(),
            name="managed-index-refresh",
        )
        logger.info(
            "Managed index refresh loop started",
            extra={"interval": self.refresh_interval, "target_lag": self._target_lag},
        )

    async def _refresh_loop(self) -> None:
        while True:
            try:
                await self.refresh()
            except WorkoutCacheError as e:
                logger.warning(
                    f"Managed index refresh failed: {e.message}",
                    extra={"error_code": e.code.value},
                )
            except Exception as e:
                logger.error(
                    f"Managed index refresh crashed: {e}",
                    extra={"collection": self.collection},
                    exc_info=True,
                )
            await asyncio.sleep(self.refresh_interval)

    async def close(self) -> None:
        """Stop the refresh loop and close the Qdrant client."""
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._refresh_task
            self._refresh_task = None
        if self._owns_client and self._client is not None:
            await self._client.close()
            self._client = None
