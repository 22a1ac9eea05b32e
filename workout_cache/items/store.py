"""Item store interface and in-memory implementation."""

import asyncio
import copy
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

from workout_cache.items.models import Item
from workout_cache.logging_config import get_logger

if TYPE_CHECKING:
    from workout_cache.filters import MetadataFilter

logger = get_logger(__name__)

# Scans hand control back to the event loop this often.
LIST_YIELD_EVERY = 256


class ItemStore(ABC):
    """Abstract base class for item stores.

    Durable keyed storage of workouts. ``put`` is atomic per item and a
    successful ``put`` makes the item eligible for the next index refresh.
    """

    @abstractmethod
    async def put(self, item: Item) -> None:
        """Store an item, replacing any item with the same id.

        Args:
            item: Item to store.

        Raises:
            StoreWriteError: If the item could not be persisted.
        """
        ...

    @abstractmethod
    async def get(self, item_id: str) -> Item | None:
        """Fetch an item by id.

        Args:
            item_id: Item identifier.

        Returns:
            The item, or None when no item has that id.
        """
        ...

    @abstractmethod
    def list(self, filters: "MetadataFilter | None" = None) -> AsyncIterator[Item]:
        """Iterate over stored items matching ``filters``.

        Every call opens a fresh cursor over the live dataset.

        Args:
            filters: Optional metadata constraints.

        Returns:
            Async iterator of items.
        """
        ...

    @abstractmethod
    async def count(self) -> int:
        """Number of stored items."""
        ...


class InMemoryItemStore(ItemStore):
    """Process-local item store.

    Items are deep-copied on the way in and out, so callers never hold a
    reference into the store. Items yielded by ``list`` share only the
    stored embedding vector. Replacing a dict entry is a single
    assignment, which keeps ``put`` atomic without any lock.
    """

    def __init__(self) -> None:
        self._items: dict[str, Item] = {}

    async def put(self, item: Item) -> None:
        self._items[item.id] = item.model_copy(deep=True)
        logger.debug("Stored item", extra={"item_id": item.id})

    async def get(self, item_id: str) -> Item | None:
        item = self._items.get(item_id)
        return item.model_copy(deep=True) if item is not None else None

    async def list(self, filters: "MetadataFilter | None" = None) -> AsyncIterator[Item]:
        # Snapshot ids only; values are read live so later puts are visible.
        for position, item_id in enumerate(list(self._items)):
            if position and position % LIST_YIELD_EVERY == 0:
                await asyncio.sleep(0)
            item = self._items.get(item_id)
            if item is None:
                continue
            if filters is not None and not filters.matches(item.metadata):
                continue
            # The embedding list is shared and must not be mutated.
            yield item.model_copy(
                update={
                    "metadata": item.metadata.model_copy(),
                    "raw_payload": copy.deepcopy(item.raw_payload),
                }
            )

    async def count(self) -> int:
        return len(self._items)
