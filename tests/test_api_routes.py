"""Tests for cache API routes."""

import pytest
from httpx import AsyncClient
from pydantic import ValidationError

from workout_cache.api.routes import (
    LookupRequest,
    WorkoutRequest,
    item_to_workout_response,
    workout_request_to_item,
)
from workout_cache.items.models import Item, WorkoutMetadata

INTERVAL_RUN = {
    "id": "1",
    "text": "5k interval run with speed work",
    "metadata": {"sport_type": "run", "distance_meters": 5000},
    "raw_payload": {"title": "5k intervals", "blocks": ["warmup", "6x800m", "cooldown"]},
}
RECOVERY_JOG = {
    "id": "2",
    "text": "easy 30 minute recovery jog",
    "metadata": {"sport_type": "run", "distance_meters": 5000},
}


class TestLookupRequest:
    """Tests for LookupRequest model."""

    def test_defaults(self) -> None:
        """Request has sensible defaults."""
        req = LookupRequest(text="tempo run")
        assert req.filters == {}
        assert req.limit is None
        assert req.min_score is None

    def test_empty_text_rejected(self) -> None:
        """Text is required."""
        with pytest.raises(ValidationError):
            LookupRequest(text="")


class TestConverters:
    """Tests for request and response converters."""

    def test_workout_request_to_item(self) -> None:
        """Converts WorkoutRequest to Item."""
        req = WorkoutRequest.model_validate(INTERVAL_RUN)
        item = workout_request_to_item(req)

        assert item.id == "1"
        assert item.metadata.distance_meters == 5000
        assert item.raw_payload == INTERVAL_RUN["raw_payload"]
        assert item.embedding is None

    def test_item_to_workout_response(self) -> None:
        """Converts Item to WorkoutResponse without the vector."""
        item = Item(
            id="1",
            text="tempo run",
            metadata=WorkoutMetadata(sport_type="run"),
            embedding=[0.1, 0.2],
            embedding_model="test-model",
        )
        response = item_to_workout_response(item)

        assert response.has_embedding
        assert response.embedding_model == "test-model"
        assert "embedding" not in response.model_dump()


class TestWithoutService:
    """Routes before the service is installed."""

    async def test_lookup_returns_503(self, client: AsyncClient) -> None:
        """Lookup returns 503 when the service is not running."""
        response = await client.post("/api/v1/cache/lookup", json={"text": "tempo run"})

        assert response.status_code == 503
        assert "not configured" in response.json()["detail"]["error"]

    async def test_lookup_validates_request(self, client: AsyncClient) -> None:
        """Lookup validates request parameters."""
        response = await client.post("/api/v1/cache/lookup", json={})

        assert response.status_code == 422


class TestLookupEndpoint:
    """Tests for POST /api/v1/cache/lookup."""

    async def test_scenario(self, service_client: AsyncClient) -> None:
        """The interval run is returned as an excellent hit."""
        for workout in (INTERVAL_RUN, RECOVERY_JOG):
            response = await service_client.post("/api/v1/workouts", json=workout)
            assert response.status_code == 200

        response = await service_client.post(
            "/api/v1/cache/lookup",
            json={"text": "5k interval training", "filters": {"sport_type": "run"}},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["decision"] == "excellent"
        assert data["is_hit"] is True
        assert data["degraded"] is False
        assert [r["item_id"] for r in data["results"]] == ["1", "2"]
        assert data["results"][0]["item_payload"] == INTERVAL_RUN["raw_payload"]
        assert data["results"][1]["decision"] == "miss"

    async def test_unknown_attribute_is_400(self, service_client: AsyncClient) -> None:
        """Invalid filters map to 400 with a structured error."""
        response = await service_client.post(
            "/api/v1/cache/lookup",
            json={"text": "tempo run", "filters": {"heart_rate": 150}},
        )

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "WC-2001"
        assert error["retryable"] is False

    async def test_negative_limit_is_422(self, service_client: AsyncClient) -> None:
        """Request validation rejects negative limits."""
        response = await service_client.post(
            "/api/v1/cache/lookup",
            json={"text": "tempo run", "limit": -1},
        )

        assert response.status_code == 422


class TestWorkoutEndpoints:
    """Tests for /api/v1/workouts."""

    async def test_store_and_fetch(self, service_client: AsyncClient) -> None:
        """A stored workout can be fetched by id."""
        response = await service_client.post("/api/v1/workouts", json=INTERVAL_RUN)
        assert response.status_code == 200
        assert response.json() == {"item_id": "1", "created": True, "embedded": True}

        response = await service_client.get("/api/v1/workouts/1")

        assert response.status_code == 200
        data = response.json()
        assert data["text"] == INTERVAL_RUN["text"]
        assert data["has_embedding"] is True
        assert "embedding" not in data

    async def test_restore_reports_update(self, service_client: AsyncClient) -> None:
        """Storing the same id again is an update."""
        await service_client.post("/api/v1/workouts", json=INTERVAL_RUN)
        response = await service_client.post("/api/v1/workouts", json=INTERVAL_RUN)

        assert response.json()["created"] is False

    async def test_missing_workout_is_404(self, service_client: AsyncClient) -> None:
        """Unknown ids map to 404."""
        response = await service_client.get("/api/v1/workouts/missing")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "WC-5000"

    async def test_blank_text_rejected(self, service_client: AsyncClient) -> None:
        """Workouts need text."""
        response = await service_client.post(
            "/api/v1/workouts",
            json={"id": "x", "text": ""},
        )

        assert response.status_code == 422

    async def test_whitespace_text_is_400(self, service_client: AsyncClient) -> None:
        """Whitespace-only text fails ingestion validation."""
        response = await service_client.post(
            "/api/v1/workouts",
            json={"id": "x", "text": "   "},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "WC-1002"


class TestStatsEndpoint:
    """Tests for /api/v1/cache/stats."""

    async def test_reports_coverage_and_segments(self, service_client: AsyncClient) -> None:
        """Stats summarise what the cache holds."""
        await service_client.post("/api/v1/workouts", json=INTERVAL_RUN)
        await service_client.post("/api/v1/workouts", json=RECOVERY_JOG)

        response = await service_client.get("/api/v1/cache/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["coverage"] == {"total": 2, "embedded": 2}
        assert data["segments"] == [
            {
                "sport_type": "run",
                "difficulty": "unknown",
                "count": 2,
                "avg_distance_km": 5.0,
                "avg_duration_min": None,
            }
        ]
