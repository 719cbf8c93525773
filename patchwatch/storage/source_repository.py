"""
Source Repository
=================

Reads source definitions from the store and turns them into Source models.
"""

from typing import List

from ..database.models import Source
from ..utils.logging import get_logger_for_component
from .base import Store, StoreQuery

SOURCE_FIELDS = ["id", "name", "type", "url", "enabled"]


class SourceRepository:
    """Repository for source records."""

    def __init__(self, store: Store, resource: str = "sources"):
        self.store = store
        self.resource = resource
        self.logger = get_logger_for_component("source_repository")

    async def get_enabled_sources(self) -> List[Source]:
        """Enabled sources ordered by id.

        Records that fail validation are logged and left out.

        Raises:
            StoreError: If the store query fails
        """
        query = StoreQuery(select=SOURCE_FIELDS).where("enabled", "eq", True).order("id")
        records = await self.store.query(self.resource, query)

        sources = []
        for record in records:
            try:
                sources.append(Source.from_record(record))
            except ValueError as e:
                self.logger.warning(f"Ignoring invalid source record {record.get('id')}: {e}")
        return sources

    async def get_all_sources(self) -> List[Source]:
        query = StoreQuery(select=SOURCE_FIELDS).order("id")
        records = await self.store.query(self.resource, query)
        return [Source.from_record(record) for record in records]

    async def create_source(self, name: str, url: str, source_type: str = "feed",
                            enabled: bool = True) -> Source:
        """Insert a new source record."""
        source = Source(id=0, name=name, url=url, type=source_type, enabled=enabled)
        record = await self.store.insert(
            self.resource,
            {"name": source.name, "type": source.type.value, "url": source.url,
             "enabled": source.enabled},
        )
        self.logger.info(f"Created source {record.get('id')}: {name}")
        return Source.from_record(record)
