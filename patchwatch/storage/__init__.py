"""
PatchWatch Storage Layer
========================

Record store backends and the repositories built on them.
"""

from ..config.settings import StoreBackend
from .base import Store, StoreQuery
from .item_repository import ItemRepository
from .rest_store import RestStore
from .source_repository import SourceRepository
from .sqlite_store import SqliteStore


def create_store(store_settings) -> Store:
    """Build the configured store backend."""
    if store_settings.backend == StoreBackend.SQLITE:
        return SqliteStore.from_path(store_settings.sqlite_path)
    return RestStore.from_settings(store_settings)


__all__ = [
    "Store",
    "StoreQuery",
    "RestStore",
    "SqliteStore",
    "SourceRepository",
    "ItemRepository",
    "create_store",
]
