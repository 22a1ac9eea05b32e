"""Workout item data models."""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(UTC)


class WorkoutMetadata(BaseModel):
    """Filterable workout attributes.

    The attribute names and types form the schema shared by the ingestion
    and query paths. Every attribute is optional; a missing value never
    satisfies a filter on that attribute.
    """

    sport_type: str | None = Field(default=None, description="run, ride, swim, ...")
    difficulty: str | None = Field(default=None, description="easy, moderate, hard, ...")
    duration_seconds: int | None = Field(default=None, ge=0, description="Moving time")
    distance_meters: int | None = Field(default=None, ge=0, description="Distance")
    generation_model: str | None = Field(default=None, description="Model that generated it")
    source: str | None = Field(default=None, description="Where the workout came from")
    version: str | None = Field(default=None, description="Store version")


class Item(BaseModel):
    """A stored workout.

    Attributes:
        id: Unique, externally assigned identifier.
        text: Searchable description of the workout.
        metadata: Filterable attributes.
        embedding: Precomputed vector, required by the direct index.
        embedding_model: Model that produced ``embedding``.
        created_at: When the item was first stored.
        updated_at: When the item was last stored.
        raw_payload: Full workout document, returned but never matched on.
    """

    id: str = Field(description="Unique item identifier")
    text: str = Field(description="Searchable workout description")
    metadata: WorkoutMetadata = Field(default_factory=WorkoutMetadata)
    embedding: list[float] | None = Field(default=None, description="Embedding vector")
    embedding_model: str | None = Field(default=None, description="Embedding model")
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    raw_payload: dict[str, Any] | None = Field(
        default=None,
        description="Full workout JSON",
    )

    @property
    def is_searchable(self) -> bool:
        """Whether the item carries text worth indexing."""
        return bool(self.text.strip())
