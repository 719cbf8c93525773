"""
PatchWatch Database Connection Management
=========================================

SQLite connection handling for the local store backend. A run is a single
task, so a small pool is enough; the pool exists so CLI commands and the
pipeline can share one manager without reopening the file.
"""

import sqlite3
import threading
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, List
from queue import Queue, Empty, Full

logger = logging.getLogger(__name__)


class DatabaseConnection:
    """SQLite connection manager with a bounded pool."""

    def __init__(self, db_path: str = "data/patchwatch.db", pool_size: int = 2):
        """Initialize database connection manager.

        Args:
            db_path: Path to SQLite database file
            pool_size: Maximum number of idle connections kept open
        """
        self.db_path = Path(db_path)
        self.pool_size = pool_size
        self.pool: Queue = Queue(maxsize=pool_size)
        self.lock = threading.Lock()
        self._total_connections = 0

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30.0)
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
        conn.row_factory = sqlite3.Row

        with self.lock:
            self._total_connections += 1

        logger.debug(f"Created database connection #{self._total_connections}")
        return conn

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a connection from the pool with automatic return.

        Usage:
            with db.get_connection() as conn:
                rows = conn.execute("SELECT * FROM sources").fetchall()
        """
        try:
            conn = self.pool.get_nowait()
        except Empty:
            conn = self._create_connection()

        try:
            yield conn
        except sqlite3.Error as e:
            logger.error(f"Database connection error: {e}")
            conn.rollback()
            raise
        finally:
            try:
                self.pool.put_nowait(conn)
            except Full:
                conn.close()
                with self.lock:
                    self._total_connections -= 1

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """Run statements in a transaction; commit on success, roll back on error."""
        with self.get_connection() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
                yield conn
                conn.commit()
            except Exception as e:
                conn.rollback()
                logger.error(f"Transaction rolled back due to error: {e}")
                raise

    def execute_query(self, query: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self.get_connection() as conn:
            return conn.execute(query, params).fetchall()

    def close_all_connections(self) -> None:
        """Close every idle pooled connection."""
        while True:
            try:
                conn = self.pool.get_nowait()
            except Empty:
                break
            conn.close()
            with self.lock:
                self._total_connections -= 1
        logger.debug("Closed pooled database connections")
