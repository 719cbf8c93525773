"""
PatchWatch Data Models
======================

Pydantic models for sources, extracted candidates and stored items, plus the
per-run budget. Store records are plain dicts; these models validate them on
the way in and shape them on the way out.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, Field, field_validator


class SourceType(str, Enum):
    """How a source's content is extracted."""
    FEED = "feed"
    PAGE_SCRAPE = "page-scrape"


# Type names written by earlier versions of the sources table
_SOURCE_TYPE_ALIASES = {
    "rss": SourceType.FEED,
    "atom": SourceType.FEED,
    "feed": SourceType.FEED,
    "page": SourceType.PAGE_SCRAPE,
    "html": SourceType.PAGE_SCRAPE,
    "scrape": SourceType.PAGE_SCRAPE,
    "page-scrape": SourceType.PAGE_SCRAPE,
    "page_scrape": SourceType.PAGE_SCRAPE,
}


def format_timestamp(value: datetime) -> str:
    """Canonical timestamp text: UTC, millisecond precision, ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


class Source(BaseModel):
    """A configured origin that is polled for new content."""
    id: Any = Field(..., description="Stable identifier assigned by the store")
    name: str = Field(..., min_length=1, description="Display name")
    type: SourceType = Field(default=SourceType.FEED, description="Extraction strategy")
    url: Optional[str] = Field(default=None, description="Origin URL")
    enabled: bool = Field(default=True, description="Whether the source is polled")

    model_config = {"frozen": True, "extra": "ignore"}

    @field_validator('type', mode='before')
    @classmethod
    def normalize_type(cls, v):
        if isinstance(v, str):
            mapped = _SOURCE_TYPE_ALIASES.get(v.strip().lower())
            if mapped is None:
                raise ValueError(f"Unknown source type: {v}")
            return mapped
        return v

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Source":
        return cls.model_validate(record)

    def __str__(self) -> str:
        return f"Source({self.name}:{self.id})"


class CandidateItem(BaseModel):
    """An extracted item that has not been checked against history yet."""
    title: str = Field(..., min_length=1)
    link: str = Field(..., min_length=1)
    external_id: Optional[str] = Field(default=None, description="Native id, or the link")
    published_at: Optional[str] = Field(default=None, description="Canonical timestamp, if known")

    def __init__(self, **data):
        if not data.get('external_id'):
            data['external_id'] = data.get('link')
        super().__init__(**data)

    def summary_line(self) -> str:
        """Notification line for this item."""
        return f"• {self.title}\n{self.link}"


class StoredItem(BaseModel):
    """A persisted item record."""
    id: Optional[Any] = Field(default=None)
    source_id: Any = Field(...)
    title: str = Field(...)
    link: str = Field(...)
    published_at: Optional[str] = Field(default=None)
    external_id: Optional[str] = Field(default=None)
    content_hash: str = Field(..., min_length=1)
    created_at: Optional[Any] = Field(default=None, description="Assigned by the store")

    model_config = {"extra": "ignore"}

    @classmethod
    def from_candidate(cls, source_id: Any, item: CandidateItem, content_hash: str) -> "StoredItem":
        return cls(
            source_id=source_id,
            title=item.title,
            link=item.link,
            published_at=item.published_at,
            external_id=item.external_id,
            content_hash=content_hash,
        )

    def to_record(self) -> Dict[str, Any]:
        """Fields written on insert; id and created_at belong to the store."""
        return self.model_dump(exclude={"id", "created_at"})


@dataclass
class RunBudget:
    """Ceilings bounding one invocation. Never persisted."""

    time_budget_seconds: float
    max_sources: int
    max_new_items: int
    clock: Callable[[], float] = time.monotonic
    started_at: Optional[float] = None

    def __post_init__(self):
        if self.started_at is None:
            self.started_at = self.clock()

    @classmethod
    def from_settings(cls, polling, clock: Callable[[], float] = time.monotonic) -> "RunBudget":
        return cls(
            time_budget_seconds=polling.time_budget_seconds,
            max_sources=polling.max_sources_per_run,
            max_new_items=polling.max_new_items_per_run,
            clock=clock,
        )

    def elapsed(self) -> float:
        return self.clock() - self.started_at

    def elapsed_ms(self) -> int:
        return int(self.elapsed() * 1000)

    def time_exceeded(self) -> bool:
        return self.elapsed() > self.time_budget_seconds

    def items_exhausted(self, accepted: int) -> bool:
        return accepted >= self.max_new_items

    def sources_exhausted(self, processed: int) -> bool:
        return processed >= self.max_sources
