"""
PatchWatch Database Schema
==========================

SQLite schema for the local store backend. It mirrors the hosted store:

- sources: polled origins (feed or page-scrape)
- items: persisted new items, unique per (source_id, content_hash)
"""

import sqlite3
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class DatabaseSchema:
    """Database schema manager for the PatchWatch SQLite database."""

    def __init__(self, db_path: str = "data/patchwatch.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all tables and indexes if they do not exist."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("PRAGMA foreign_keys = ON")
            self._create_sources_table(conn)
            self._create_items_table(conn)
            self._create_indexes(conn)
            conn.commit()
        logger.info("Database schema created successfully")

    def _create_sources_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS sources (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                type TEXT NOT NULL DEFAULT 'feed',
                url TEXT,
                enabled BOOLEAN NOT NULL DEFAULT TRUE,
                created_at TIMESTAMP DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now'))
            )
        """
        )

    def _create_items_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                source_id INTEGER NOT NULL,
                title TEXT NOT NULL,
                link TEXT NOT NULL,
                published_at TEXT,
                external_id TEXT,
                content_hash TEXT NOT NULL,
                created_at TIMESTAMP DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now')),
                FOREIGN KEY (source_id) REFERENCES sources(id) ON DELETE CASCADE,
                UNIQUE (source_id, content_hash)
            )
        """
        )

    def _create_indexes(self, conn: sqlite3.Connection) -> None:
        indexes = [
            "CREATE INDEX IF NOT EXISTS idx_sources_enabled ON sources(enabled)",
            "CREATE INDEX IF NOT EXISTS idx_items_source_created ON items(source_id, created_at DESC)",
        ]
        for index_sql in indexes:
            conn.execute(index_sql)

    def verify_schema(self) -> bool:
        """Check that the expected tables exist."""
        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table'"
            ).fetchall()
        tables = {row[0] for row in rows}
        missing = {"sources", "items"} - tables
        if missing:
            logger.error(f"Missing tables: {sorted(missing)}")
            return False
        return True
