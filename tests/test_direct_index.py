"""Tests for the direct vector index."""

import numpy as np
import pytest

from workout_cache.exceptions import ErrorCode, InvalidQueryError
from workout_cache.filters import MetadataFilter, parse_filters
from workout_cache.index.base import normalize_score, rank_results
from workout_cache.index.direct import DirectVectorIndex, cosine_similarity
from workout_cache.index.models import Consistency, SearchResult
from workout_cache.items.models import Item
from workout_cache.items.store import InMemoryItemStore

from tests.fakes import FAKE_DIMENSIONS, concept_vector, make_item


async def _put_embedded(store: InMemoryItemStore, item: Item) -> None:
    await store.put(item.model_copy(update={"embedding": concept_vector(item.text)}))


@pytest.fixture
def index(store: InMemoryItemStore) -> DirectVectorIndex:
    return DirectVectorIndex(store, dimensions=FAKE_DIMENSIONS)


class TestScoring:
    """Tests for score helpers."""

    def test_normalize_clamps(self) -> None:
        """Scores are clamped into [0, 1]."""
        assert normalize_score(-0.4) == 0.0
        assert normalize_score(0.42) == 0.42
        assert normalize_score(1.0000001) == 1.0

    def test_cosine_similarity(self) -> None:
        """Cosine similarity against each row."""
        matrix = np.array([[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])
        scores = cosine_similarity(np.array([1.0, 0.0]), matrix)
        assert scores[0] == pytest.approx(1.0)
        assert scores[1] == pytest.approx(0.0)
        assert scores[2] == pytest.approx(1 / np.sqrt(2))

    def test_zero_vector_scores_zero(self) -> None:
        """Zero vectors are similar to nothing."""
        matrix = np.array([[0.0, 0.0], [1.0, 0.0]])
        scores = cosine_similarity(np.array([1.0, 0.0]), matrix)
        assert scores[0] == 0.0

    def test_rank_results_tie_break(self, interval_run: Item) -> None:
        """Equal scores are ordered by ascending item id."""
        results = [
            SearchResult(item_id=item_id, score=score, item=interval_run)
            for item_id, score in [("b", 0.5), ("c", 0.9), ("a", 0.5)]
        ]
        ranked = rank_results(results, limit=10)
        assert [r.item_id for r in ranked] == ["c", "a", "b"]

    def test_rank_results_truncates(self, interval_run: Item) -> None:
        """At most ``limit`` results are kept."""
        results = [
            SearchResult(item_id=str(i), score=0.1 * i, item=interval_run)
            for i in range(5)
        ]
        assert [r.item_id for r in rank_results(results, limit=2)] == ["4", "3"]


class TestDirectVectorIndex:
    """Tests for DirectVectorIndex.search."""

    def test_refresh_policy_is_synchronous(self, index: DirectVectorIndex) -> None:
        """Completed writes are immediately searchable."""
        policy = index.refresh_policy()
        assert policy.consistency == Consistency.SYNCHRONOUS
        assert policy.target_lag_seconds == 0.0
        assert index.requires_query_vector
        assert index.requires_stored_embeddings

    async def test_exact_text_is_near_identity(
        self,
        store: InMemoryItemStore,
        index: DirectVectorIndex,
        interval_run: Item,
        recovery_jog: Item,
    ) -> None:
        """Querying with an item's own text finds it with score >= 0.99."""
        await _put_embedded(store, interval_run)
        await _put_embedded(store, recovery_jog)

        for item in (interval_run, recovery_jog):
            filters = parse_filters(item.metadata.model_dump(exclude_none=True))
            results = await index.search(concept_vector(item.text), filters, limit=5)
            assert results[0].item_id == item.id
            assert results[0].score >= 0.99

    async def test_ordering(
        self,
        store: InMemoryItemStore,
        index: DirectVectorIndex,
        interval_run: Item,
        recovery_jog: Item,
    ) -> None:
        """Results are ordered by descending score."""
        await _put_embedded(store, recovery_jog)
        await _put_embedded(store, interval_run)

        results = await index.search(
            concept_vector("5k interval training"), MetadataFilter(), limit=5
        )

        assert [r.item_id for r in results] == ["1", "2"]
        assert results[0].score == pytest.approx(7 / np.sqrt(55))
        assert results[1].score == 0.0

    async def test_identical_items_tie_break_by_id(
        self,
        store: InMemoryItemStore,
        index: DirectVectorIndex,
    ) -> None:
        """Items with identical vectors come back in id order."""
        for item_id in ("b", "a", "c"):
            await _put_embedded(store, make_item(item_id, "tempo run"))

        results = await index.search(concept_vector("tempo run"), MetadataFilter(), limit=3)

        assert [r.item_id for r in results] == ["a", "b", "c"]

    async def test_filters_exclude_everything(
        self,
        store: InMemoryItemStore,
        index: DirectVectorIndex,
        interval_run: Item,
    ) -> None:
        """A filter nothing satisfies yields no results."""
        await _put_embedded(store, interval_run)

        results = await index.search(
            concept_vector("5k interval training"),
            parse_filters({"sport_type": "swim"}),
            limit=5,
        )

        assert results == []

    async def test_zero_limit(
        self,
        store: InMemoryItemStore,
        index: DirectVectorIndex,
        interval_run: Item,
    ) -> None:
        """limit 0 returns nothing."""
        await _put_embedded(store, interval_run)
        assert await index.search(concept_vector("5k"), MetadataFilter(), limit=0) == []

    async def test_empty_store(self, index: DirectVectorIndex) -> None:
        """An empty store yields no results."""
        assert await index.search(concept_vector("5k"), MetadataFilter(), limit=5) == []

    async def test_skips_items_without_embedding(
        self,
        store: InMemoryItemStore,
        index: DirectVectorIndex,
        interval_run: Item,
    ) -> None:
        """Items stored without a vector are not candidates."""
        await store.put(interval_run)
        assert await index.search(concept_vector("5k"), MetadataFilter(), limit=5) == []

    async def test_text_query_rejected(self, index: DirectVectorIndex) -> None:
        """The direct index needs a precomputed vector."""
        with pytest.raises(InvalidQueryError):
            await index.search("5k interval training", MetadataFilter(), limit=5)

    async def test_query_dimension_mismatch(self, index: DirectVectorIndex) -> None:
        """A query vector of the wrong length is rejected."""
        with pytest.raises(InvalidQueryError) as exc_info:
            await index.search([1.0, 0.0], MetadataFilter(), limit=5)
        assert exc_info.value.code == ErrorCode.DIMENSION_MISMATCH

    async def test_stored_dimension_mismatch(
        self,
        store: InMemoryItemStore,
        index: DirectVectorIndex,
    ) -> None:
        """A stored vector from another model is rejected, not silently scored."""
        await store.put(Item(id="old", text="tempo run", embedding=[1.0, 0.0, 0.0]))

        with pytest.raises(InvalidQueryError) as exc_info:
            await index.search(concept_vector("tempo run"), MetadataFilter(), limit=5)
        assert exc_info.value.code == ErrorCode.DIMENSION_MISMATCH
        assert exc_info.value.details["source"] == "old"
