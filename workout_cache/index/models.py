"""Index backend data models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from workout_cache.items.models import Item


class Consistency(str, Enum):
    """How soon a stored item becomes searchable."""

    SYNCHRONOUS = "synchronous"
    EVENTUAL = "eventual"


class RefreshPolicy(BaseModel):
    """Consistency characteristics reported by a backend.

    Attributes:
        consistency: Whether completed writes are immediately searchable.
        target_lag_seconds: Upper bound on staleness (0 when synchronous).
        last_refreshed_at: End of the last completed refresh cycle, if any.
    """

    consistency: Consistency = Field(description="Consistency model")
    target_lag_seconds: float = Field(default=0.0, ge=0.0, description="Staleness bound")
    last_refreshed_at: datetime | None = Field(
        default=None,
        description="Last completed refresh",
    )


class SearchResult(BaseModel):
    """Result from a similarity search.

    Attributes:
        item_id: Matched item identifier.
        score: Cosine similarity mapped into [0, 1] (higher is more similar).
        item: The matched item.
    """

    item_id: str = Field(description="Item identifier")
    score: float = Field(ge=0.0, le=1.0, description="Similarity score")
    item: Item = Field(description="Matched item")
