"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from workout_cache.api.app import app
from workout_cache.config import CacheSettings, QdrantSettings, Settings
from workout_cache.items.models import Item
from workout_cache.items.store import InMemoryItemStore
from workout_cache.service import CacheService, build_cache_service

from tests.fakes import FakeEmbeddingService, make_item


@pytest.fixture
def embedder() -> FakeEmbeddingService:
    """Fresh fake embedding provider."""
    return FakeEmbeddingService()


@pytest.fixture
def store() -> InMemoryItemStore:
    """Empty in-memory item store."""
    return InMemoryItemStore()


@pytest.fixture
def cache_settings() -> CacheSettings:
    """Cache settings with fast retries for tests."""
    return CacheSettings(
        max_attempts=3,
        retry_max_wait=0.0,
        embedding_timeout=1.0,
        search_timeout=1.0,
    )


@pytest.fixture
def interval_run() -> Item:
    """Workout that should match an interval query."""
    return make_item("1", "5k interval run with speed work", distance_meters=5000)


@pytest.fixture
def recovery_jog() -> Item:
    """Workout that should not match an interval query."""
    return make_item("2", "easy 30 minute recovery jog", distance_meters=5000)


@pytest.fixture
def settings(cache_settings: CacheSettings) -> Settings:
    """Application settings using the direct backend and in-process Qdrant."""
    return Settings(
        cache=cache_settings,
        qdrant=QdrantSettings(url=":memory:", collection_name="test_workouts"),
    )


@pytest.fixture
async def cache_service(
    settings: Settings,
    embedder: FakeEmbeddingService,
) -> AsyncGenerator[CacheService, None]:
    """Cache service on the direct backend with the fake provider."""
    service = build_cache_service(settings, embedding_service=embedder)
    await service.start()
    yield service
    await service.close()


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Create async test client for FastAPI app.

    Yields:
        AsyncClient configured for testing.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def service_client(
    cache_service: CacheService,
) -> AsyncGenerator[AsyncClient, None]:
    """Test client with a cache service installed on the app."""
    app.state.cache_service = cache_service
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        app.state.cache_service = None
