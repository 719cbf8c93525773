"""
SQLite Record Store
===================

Local store backend with the same resources as the hosted store. Useful for
development and for running PatchWatch without a hosted database.
"""

import sqlite3
from typing import Any, Dict, List

from ..database.connection import DatabaseConnection
from ..database.schema import DatabaseSchema
from ..utils.exceptions import DuplicateRecordError, ErrorCode, StoreError
from ..utils.logging import get_logger_for_component
from .base import StoreQuery, check_identifier

_SQL_OPERATORS = {
    "eq": "=",
    "neq": "!=",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
}


def render_sql(resource: str, query: StoreQuery) -> tuple:
    """Render a StoreQuery as a parameterized SELECT statement."""
    columns = ", ".join(query.selected_fields())
    sql = f"SELECT {columns} FROM {check_identifier(resource)}"
    params: List[Any] = []

    clauses = []
    for field_name, op, value in query.filters:
        if value is None and op == "eq":
            clauses.append(f"{field_name} IS NULL")
            continue
        clauses.append(f"{field_name} {_SQL_OPERATORS[op]} ?")
        params.append(value)
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)

    if query.order_by:
        direction = "DESC" if query.descending else "ASC"
        sql += f" ORDER BY {query.order_by} {direction}"
        if query.order_by != "id":
            # created_at can tie within a millisecond
            sql += f", id {direction}"
    if query.limit is not None:
        sql += " LIMIT ?"
        params.append(int(query.limit))

    return sql, tuple(params)


class SqliteStore:
    """Store backend over a local SQLite database."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection
        self.logger = get_logger_for_component("sqlite_store")

    @classmethod
    def from_path(cls, db_path: str, create: bool = True) -> "SqliteStore":
        if create:
            DatabaseSchema(db_path).create_tables()
        return cls(DatabaseConnection(db_path))

    async def query(self, resource: str, query: StoreQuery) -> List[Dict[str, Any]]:
        sql, params = render_sql(resource, query)
        try:
            rows = self.db.execute_query(sql, params)
        except sqlite3.Error as e:
            raise StoreError(
                f"Store query failed for {resource}: {e}",
                resource=resource,
                error_code=ErrorCode.STORE_QUERY,
                context={"query": sql},
            ) from e
        return [self._row_to_record(row) for row in rows]

    async def insert(self, resource: str, record: Dict[str, Any]) -> Dict[str, Any]:
        table = check_identifier(resource)
        columns = [check_identifier(name) for name in record]
        placeholders = ", ".join("?" for _ in columns)
        sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"

        try:
            with self.db.transaction() as conn:
                cursor = conn.execute(sql, tuple(record[name] for name in columns))
                row = conn.execute(
                    f"SELECT * FROM {table} WHERE rowid = ?", (cursor.lastrowid,)
                ).fetchone()
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e).upper():
                raise DuplicateRecordError(
                    f"Duplicate record rejected by {resource}: {e}",
                    resource=resource,
                ) from e
            raise StoreError(
                f"Store insert failed for {resource}: {e}",
                resource=resource,
                error_code=ErrorCode.STORE_INSERT,
                recoverable=True,
            ) from e
        except sqlite3.Error as e:
            raise StoreError(
                f"Store insert failed for {resource}: {e}",
                resource=resource,
                error_code=ErrorCode.STORE_INSERT,
                recoverable=True,
            ) from e

        self.logger.debug(f"Inserted into {resource}: id={row['id']}")
        return self._row_to_record(row)

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> Dict[str, Any]:
        record = dict(row)
        if "enabled" in record and record["enabled"] is not None:
            record["enabled"] = bool(record["enabled"])
        return record

    async def close(self) -> None:
        self.db.close_all_connections()
