"""Query pipeline data models."""

from typing import Any

from pydantic import BaseModel, Field

from workout_cache.decision.policy import CacheDecision
from workout_cache.items.models import Item


class Query(BaseModel):
    """A cache lookup request.

    Attributes:
        text: Natural-language workout request.
        filters: Attribute -> constraint mapping (see ``workout_cache.filters``).
        limit: Maximum candidates to return; 0 returns nothing.
        min_score: Drop candidates scoring below this.
    """

    text: str = Field(description="Workout request text")
    filters: dict[str, Any] = Field(default_factory=dict, description="Metadata filters")
    limit: int = Field(default=5, ge=0, description="Maximum candidates")
    min_score: float | None = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Minimum similarity score",
    )


class RankedResult(BaseModel):
    """A search result labelled by the decision policy.

    Attributes:
        item_id: Matched item identifier.
        score: Similarity score in [0, 1].
        decision: Cache decision for this score.
        item: The matched item.
    """

    item_id: str = Field(description="Item identifier")
    score: float = Field(ge=0.0, le=1.0, description="Similarity score")
    decision: CacheDecision = Field(description="Cache decision")
    item: Item = Field(description="Matched item")
