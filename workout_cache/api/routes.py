"""API routes for cache lookups and workout ingestion."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from workout_cache.ingestion.models import EmbeddingCoverage, IngestResult, SegmentStats
from workout_cache.items.models import Item, WorkoutMetadata
from workout_cache.logging_config import get_logger
from workout_cache.service import CacheLookup, CacheService

logger = get_logger(__name__)


# Create router
router = APIRouter(prefix="/api/v1", tags=["Cache"])


class LookupRequest(BaseModel):
    """Request body for a cache lookup."""

    text: str = Field(min_length=1, description="Workout request text")
    filters: dict[str, Any] = Field(
        default_factory=dict,
        description="Metadata constraints, e.g. {\"sport_type\": \"run\"}",
    )
    limit: int | None = Field(default=None, ge=0, le=100, description="Maximum candidates")
    min_score: float | None = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Minimum similarity score",
    )


class WorkoutRequest(BaseModel):
    """Request body for storing a workout."""

    id: str = Field(min_length=1, description="Unique workout identifier")
    text: str = Field(min_length=1, description="Searchable workout description")
    metadata: WorkoutMetadata = Field(default_factory=WorkoutMetadata)
    embedding: list[float] | None = Field(default=None, description="Precomputed vector")
    embedding_model: str | None = Field(default=None, description="Model of the vector")
    raw_payload: dict[str, Any] | None = Field(default=None, description="Full workout JSON")


class WorkoutResponse(BaseModel):
    """A stored workout, without its vector."""

    id: str
    text: str
    metadata: WorkoutMetadata
    embedding_model: str | None
    has_embedding: bool
    raw_payload: dict[str, Any] | None


class CacheStats(BaseModel):
    """Embedding coverage and segment breakdown of the store."""

    coverage: EmbeddingCoverage
    segments: list[SegmentStats]


def get_cache_service(request: Request) -> CacheService:
    """Cache service installed by the application lifespan."""
    service = getattr(request.app.state, "cache_service", None)
    if service is None:
        logger.warning("Cache service not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "Cache service not configured",
                "message": "The cache service starts with the application lifespan",
            },
        )
    return service


@router.post("/cache/lookup", response_model=CacheLookup)
async def lookup_endpoint(
    request: LookupRequest,
    service: CacheService = Depends(get_cache_service),
) -> CacheLookup:
    """Find cached workouts similar to the request text."""
    return await service.find_cached(
        request.text,
        filters=request.filters,
        limit=request.limit,
        min_score=request.min_score,
    )


@router.get("/cache/stats", response_model=CacheStats)
async def stats_endpoint(
    service: CacheService = Depends(get_cache_service),
) -> CacheStats:
    """Report what the cache holds."""
    return CacheStats(
        coverage=await service.coverage(),
        segments=await service.distribution(),
    )


@router.post("/workouts", response_model=IngestResult)
async def store_endpoint(
    request: WorkoutRequest,
    service: CacheService = Depends(get_cache_service),
) -> IngestResult:
    """Store a new or updated workout."""
    return await service.store(workout_request_to_item(request))


@router.get("/workouts/{item_id}", response_model=WorkoutResponse)
async def get_workout_endpoint(
    item_id: str,
    service: CacheService = Depends(get_cache_service),
) -> WorkoutResponse:
    """Fetch a stored workout by id."""
    item = await service.get_item(item_id)
    return item_to_workout_response(item)


def workout_request_to_item(request: WorkoutRequest) -> Item:
    """Convert API WorkoutRequest to internal Item."""
    return Item(
        id=request.id,
        text=request.text,
        metadata=request.metadata,
        embedding=request.embedding,
        embedding_model=request.embedding_model,
        raw_payload=request.raw_payload,
    )


def item_to_workout_response(item: Item) -> WorkoutResponse:
    """Convert internal Item to API WorkoutResponse."""
    return WorkoutResponse(
        id=item.id,
        text=item.text,
        metadata=item.metadata,
        embedding_model=item.embedding_model,
        has_embedding=item.embedding is not None,
        raw_payload=item.raw_payload,
    )
