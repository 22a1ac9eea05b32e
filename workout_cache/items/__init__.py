"""Item model and storage."""

from workout_cache.items.models import Item, WorkoutMetadata
from workout_cache.items.store import InMemoryItemStore, ItemStore

__all__ = [
    "InMemoryItemStore",
    "Item",
    "ItemStore",
    "WorkoutMetadata",
]
