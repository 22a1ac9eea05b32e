"""Ingestion pipeline: validate, embed when needed, store."""

from collections import defaultdict
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from workout_cache.config import CacheSettings, get_settings
from workout_cache.embeddings.service import EmbeddingService, embed_with_timeout
from workout_cache.exceptions import (
    ConfigurationError,
    StoreWriteError,
    ValidationError,
    WorkoutCacheError,
)
from workout_cache.index.base import IndexBackend
from workout_cache.ingestion.models import EmbeddingCoverage, IngestResult, SegmentStats
from workout_cache.items.models import Item
from workout_cache.items.store import ItemStore
from workout_cache.logging_config import get_logger
from workout_cache.observability.metrics import track_ingestion
from workout_cache.retry import retry_async

logger = get_logger(__name__)

UNKNOWN_SEGMENT = "unknown"


class IngestionPipeline:
    """Writes items so that every active backend can serve them.

    When a backend needs stored embeddings (the direct index), the vector
    is attached before ``put``; if that fails nothing is written. A vector
    is regenerated only when the text (or the model) changes, so
    metadata-only updates keep the stored embedding.
    """

    def __init__(
        self,
        store: ItemStore,
        backends: Sequence[IndexBackend],
        embedding_service: EmbeddingService | None = None,
        settings: CacheSettings | None = None,
    ) -> None:
        """Initialize the ingestion pipeline.

        Args:
            store: Item store to write to.
            backends: Active backends; decides whether vectors are needed.
            embedding_service: Provider for item vectors.
            settings: Timeouts and retry configuration.
        """
        self._store = store
        self._embedding = embedding_service
        self._settings = settings or get_settings().cache
        self._embed_on_write = any(b.requires_stored_embeddings for b in backends)
        if self._embed_on_write and embedding_service is None:
            raise ConfigurationError(
                "Stored embeddings are required but no embedding service is configured"
            )

    @property
    def embeds_on_write(self) -> bool:
        return self._embed_on_write

    async def ingest(self, item: Item) -> IngestResult:
        """Store a new or updated item.

        Args:
            item: Item with text and metadata, with or without an embedding.

        Returns:
            IngestResult describing the write.

        Raises:
            ValidationError: If required fields are missing or malformed.
            EmbeddingUnavailableError: If a required vector could not be made.
            StoreWriteError: If the store rejected the write.
        """
        try:
            result = await self._ingest(item)
        except WorkoutCacheError as e:
            track_ingestion(success=False)
            logger.error(
                f"Ingestion failed: {e.message}",
                extra={"item_id": item.id, "error_code": e.code.value},
            )
            raise
        track_ingestion()
        return result

    async def _ingest(self, item: Item) -> IngestResult:
        self._validate(item)
        existing = await self._store.get(item.id)

        update: dict[str, Any] = {"updated_at": datetime.now(UTC)}
        if existing is not None:
            update["created_at"] = existing.created_at

        embedded = False
        has_vector = item.embedding is not None
        if has_vector and item.embedding_model is None and self._embedding is not None:
            update["embedding_model"] = self._embedding.model_name
        elif item.embedding is None and self._embed_on_write:
            reusable = self._reusable_embedding(existing, item)
            if reusable is not None:
                update["embedding"] = reusable
                update["embedding_model"] = self._model_name
            else:
                update["embedding"] = await self._embed_with_retry(item.text)
                update["embedding_model"] = self._model_name
                embedded = True

        stored = item.model_copy(update=update)
        try:
            await self._store.put(stored)
        except StoreWriteError:
            raise
        except Exception as e:
            raise StoreWriteError(
                f"Failed to store item: {e}",
                details={"item_id": item.id, "error": str(e)},
            ) from e

        logger.info(
            "Ingested item",
            extra={"item_id": item.id, "created": existing is None, "embedded": embedded},
        )
        return IngestResult(item_id=item.id, created=existing is None, embedded=embedded)

    @property
    def _model_name(self) -> str | None:
        return self._embedding.model_name if self._embedding else None

    def _validate(self, item: Item) -> None:
        if not item.id.strip():
            raise ValidationError("Item id must not be empty")
        if not item.text.strip():
            raise ValidationError(
                "Item text must not be empty",
                details={"item_id": item.id},
            )
        if item.embedding is not None and self._embedding is not None:
            expected = self._embedding.dimensions
            if len(item.embedding) != expected:
                raise ValidationError(
                    f"Embedding has {len(item.embedding)} dimensions, expected {expected}",
                    details={"item_id": item.id},
                )

    def _reusable_embedding(self, existing: Item | None, item: Item) -> list[float] | None:
        """Stored vector for an unchanged text, if there is one."""
        if existing is None or existing.text != item.text:
            return None
        if existing.embedding_model != self._model_name:
            return None
        return existing.embedding

    async def _embed_with_retry(self, text: str) -> list[float]:
        return await retry_async(
            lambda: self._embed(text),
            max_attempts=self._settings.max_attempts,
            max_wait=self._settings.retry_max_wait,
        )

    async def _embed(self, text: str) -> list[float]:
        if self._embedding is None:
            raise ConfigurationError("Item embedding requested without a provider")
        return await embed_with_timeout(
            self._embedding, text, self._settings.embedding_timeout
        )

    async def coverage(self) -> EmbeddingCoverage:
        """Count stored items and how many carry an embedding."""
        total = 0
        embedded = 0
        async for item in self._store.list():
            total += 1
            if item.embedding is not None:
                embedded += 1
        return EmbeddingCoverage(total=total, embedded=embedded)

    async def distribution(self) -> list[SegmentStats]:
        """Group stored items by sport type and difficulty.

        Returns:
            One row per segment, largest first, then by name.
        """
        counts: dict[tuple[str, str], int] = defaultdict(int)
        distances: dict[tuple[str, str], list[int]] = defaultdict(list)
        durations: dict[tuple[str, str], list[int]] = defaultdict(list)
        async for item in self._store.list():
            meta = item.metadata
            key = (meta.sport_type or UNKNOWN_SEGMENT, meta.difficulty or UNKNOWN_SEGMENT)
            counts[key] += 1
            if meta.distance_meters is not None:
                distances[key].append(meta.distance_meters)
            if meta.duration_seconds is not None:
                durations[key].append(meta.duration_seconds)

        rows: list[SegmentStats] = []
        for key, count in counts.items():
            sport_type, difficulty = key
            rows.append(
                SegmentStats(
                    sport_type=sport_type,
                    difficulty=difficulty,
                    count=count,
                    avg_distance_km=_mean(distances[key], scale=1000),
                    avg_duration_min=_mean(durations[key], scale=60),
                )
            )
        rows.sort(key=lambda r: (-r.count, r.sport_type, r.difficulty))
        return rows


def _mean(values: list[int], scale: int) -> float | None:
    if not values:
        return None
    return round(sum(values) / len(values) / scale, 2)
