"""Ingestion data models."""

from pydantic import BaseModel, Field


class IngestResult(BaseModel):
    """Outcome of storing one item.

    Attributes:
        item_id: Stored item identifier.
        created: True if no item with this id existed before.
        embedded: True if the provider was called for this write.
    """

    item_id: str = Field(description="Item identifier")
    created: bool = Field(description="Whether the item is new")
    embedded: bool = Field(default=False, description="Whether a vector was generated")


class EmbeddingCoverage(BaseModel):
    """How much of the store carries embeddings."""

    total: int = Field(ge=0, description="Stored items")
    embedded: int = Field(ge=0, description="Items with an embedding")

    @property
    def pct_embedded(self) -> float:
        if self.total == 0:
            return 0.0
        return round(100.0 * self.embedded / self.total, 1)


class SegmentStats(BaseModel):
    """Stored workouts sharing a sport type and difficulty.

    Missing attributes are grouped under ``"unknown"``. Averages skip
    items without the attribute and are None when none carry it.
    """

    sport_type: str = Field(description="Sport type")
    difficulty: str = Field(description="Difficulty")
    count: int = Field(ge=0, description="Stored items in the segment")
    avg_distance_km: float | None = Field(default=None, description="Mean distance")
    avg_duration_min: float | None = Field(default=None, description="Mean moving time")
