"""
PatchWatch Processing Module
============================

The ingestion pipeline: source selection, fetching, extraction,
fingerprinting, deduplication and the run orchestrator.
"""

from .deduplicator import Deduplicator
from .fetcher import FetchResult, SourceFetcher
from .fingerprint import fingerprint, fingerprint_item
from .parsers import ContentParser, FeedContentParser, PageScrapeParser, build_parsers
from .pipeline import PollingPipeline, PollResult, RunState, run_poll
from .scheduler import SourceScheduler, rotate_window

__all__ = [
    "Deduplicator",
    "FetchResult",
    "SourceFetcher",
    "fingerprint",
    "fingerprint_item",
    "ContentParser",
    "FeedContentParser",
    "PageScrapeParser",
    "build_parsers",
    "PollingPipeline",
    "PollResult",
    "RunState",
    "run_poll",
    "SourceScheduler",
    "rotate_window",
]
