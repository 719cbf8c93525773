"""
Item Repository
===============

Repository for stored items: recent fingerprints for deduplication and
single-item inserts.
"""

from typing import Any, Set

from ..database.models import StoredItem
from ..utils.logging import get_logger_for_component
from .base import Store, StoreQuery


class ItemRepository:
    """Repository for item records."""

    def __init__(self, store: Store, resource: str = "items"):
        self.store = store
        self.resource = resource
        self.logger = get_logger_for_component("item_repository")

    async def recent_fingerprints(self, source_id: Any, limit: int) -> Set[str]:
        """Fingerprints of the ``limit`` most recently created items of a source.

        Raises:
            StoreError: If the store query fails
        """
        query = (
            StoreQuery(select=["content_hash"])
            .where("source_id", "eq", source_id)
            .order("created_at", descending=True)
            .take(limit)
        )
        records = await self.store.query(self.resource, query)
        return {r["content_hash"] for r in records if r.get("content_hash")}

    async def create_item(self, item: StoredItem) -> StoredItem:
        """Persist one item.

        Raises:
            DuplicateRecordError: If the fingerprint is already stored
            StoreError: If the insert fails
        """
        record = await self.store.insert(self.resource, item.to_record())
        stored = StoredItem.model_validate({**item.to_record(), **record})
        self.logger.debug(f"Stored item {stored.id}: {stored.title}")
        return stored
