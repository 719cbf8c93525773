"""
Store Interface
===============

The record store is an external collaborator. The pipeline only needs two
operations from it, ``query`` and ``insert``, addressed by resource name and
a small filter description that each backend renders in its own dialect.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from ..utils.exceptions import ValidationError

# Operators every backend understands
OPERATORS = ("eq", "neq", "gt", "gte", "lt", "lte")

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def check_identifier(name: str) -> str:
    """Reject resource/field names that are not plain identifiers."""
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise ValidationError(f"Invalid identifier: {name!r}", field_name="identifier")
    return name


@dataclass
class StoreQuery:
    """Equality/ordering/limit predicates over named fields.

    Example: enabled sources ordered by id::

        StoreQuery(select=["id", "name"]).where("enabled", "eq", True).order("id")
    """

    select: Sequence[str] = ("*",)
    filters: List[Tuple[str, str, Any]] = field(default_factory=list)
    order_by: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = None

    def where(self, field_name: str, op: str, value: Any) -> "StoreQuery":
        if op not in OPERATORS:
            raise ValidationError(f"Unsupported operator: {op}", field_name="op")
        self.filters.append((check_identifier(field_name), op, value))
        return self

    def order(self, field_name: str, descending: bool = False) -> "StoreQuery":
        self.order_by = check_identifier(field_name)
        self.descending = descending
        return self

    def take(self, limit: int) -> "StoreQuery":
        self.limit = limit
        return self

    def selected_fields(self) -> List[str]:
        fields = list(self.select) or ["*"]
        return [f if f == "*" else check_identifier(f) for f in fields]


class Store(Protocol):
    """Generic record read/write service."""

    async def query(self, resource: str, query: StoreQuery) -> List[Dict[str, Any]]:
        """Return matching records. Raises StoreError on failure."""
        ...

    async def insert(self, resource: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """Insert one record and return it as stored.

        Raises DuplicateRecordError when a uniqueness constraint rejects it,
        StoreError on any other failure.
        """
        ...

    async def close(self) -> None:
        ...
