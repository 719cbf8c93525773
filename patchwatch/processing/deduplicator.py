"""
Per-source fingerprint deduplication.

History is bounded: only the most recent ``lookback`` fingerprints of a
source are loaded, so an item older than that window which reappears in a
feed is treated as new again.
"""

from typing import Any, Dict, Set

from ..storage.item_repository import ItemRepository
from ..utils.logging import get_logger_for_component

DEFAULT_LOOKBACK = 200


class Deduplicator:
    """Membership test against recently recorded fingerprints."""

    def __init__(self, item_repository: ItemRepository, lookback: int = DEFAULT_LOOKBACK):
        self.items = item_repository
        self.lookback = lookback
        self._seen: Dict[Any, Set[str]] = {}
        self.logger = get_logger_for_component("deduplicator")

    async def load(self, source_id: Any) -> int:
        """Load recent fingerprints for a source once per run.

        Returns:
            Number of fingerprints known for the source

        Raises:
            StoreError: If the store query fails
        """
        if source_id not in self._seen:
            self._seen[source_id] = await self.items.recent_fingerprints(source_id, self.lookback)
            self.logger.debug(
                f"Loaded {len(self._seen[source_id])} recent fingerprints",
                extra={"source_id": source_id},
            )
        return len(self._seen[source_id])

    def is_new(self, source_id: Any, fingerprint: str) -> bool:
        return fingerprint not in self._seen.get(source_id, set())

    def remember(self, source_id: Any, fingerprint: str) -> None:
        """Record a fingerprint accepted during this run."""
        self._seen.setdefault(source_id, set()).add(fingerprint)
