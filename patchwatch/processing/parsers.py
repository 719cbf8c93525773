"""
Content Parsers
===============

Turns fetched source content into candidate items. There is one parser per
source type, all sharing the ``extract(raw, source)`` capability:

- FeedContentParser: RSS/Atom items via feedparser's tolerant parser
- PageScrapeParser: detail-page links scraped from HTML with BeautifulSoup

Both are best effort. Malformed markup yields fewer candidates, never an
exception, and output is capped per source so a runaway feed costs the same
as a well behaved one.
"""

import calendar
import io
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union
from urllib.parse import urldefrag, urljoin, urlparse

import feedparser
from bs4 import BeautifulSoup

from ..database.models import CandidateItem, Source, SourceType, format_timestamp
from ..utils.logging import get_logger_for_component

DEFAULT_MAX_CANDIDATES = 10

RawContent = Union[bytes, str]

_PSEUDO_SCHEMES = ("javascript:", "mailto:", "tel:", "data:")


def strip_cdata(value: Optional[str]) -> str:
    """Remove CDATA wrappers left behind by broken markup."""
    if not value:
        return ""
    return value.replace("<![CDATA[", "").replace("]]>", "").strip()


class ContentParser(ABC):
    """Extraction strategy for one source type."""

    source_type: SourceType

    def __init__(self, max_candidates: int = DEFAULT_MAX_CANDIDATES):
        self.max_candidates = max_candidates
        self.logger = get_logger_for_component("parser")

    @abstractmethod
    def extract(self, raw: RawContent, source: Source) -> List[CandidateItem]:
        """Extract at most ``max_candidates`` items from raw content."""


class FeedContentParser(ContentParser):
    """RSS and Atom item extraction."""

    source_type = SourceType.FEED

    def extract(self, raw: RawContent, source: Source) -> List[CandidateItem]:
        # content-location lets feedparser resolve relative item links
        headers = {"content-location": source.url} if source.url else None
        if isinstance(raw, str):
            raw = raw.encode("utf-8")
        # a stream is never mistaken for a URL or a local file path
        parsed = feedparser.parse(io.BytesIO(raw), response_headers=headers)

        if parsed.bozo:
            self.logger.debug(
                f"Feed parse warning for {source.url}: {parsed.get('bozo_exception')}",
                extra={"source_id": source.id},
            )

        items: List[CandidateItem] = []
        for entry in parsed.entries:
            if len(items) >= self.max_candidates:
                break

            title = strip_cdata(entry.get("title"))
            link = self._entry_link(entry)
            if not title or not link:
                continue

            items.append(
                CandidateItem(
                    title=title,
                    link=link,
                    external_id=strip_cdata(entry.get("id")) or link,
                    published_at=self._published_at(entry),
                )
            )

        self.logger.debug(
            f"Extracted {len(items)} of {len(parsed.entries)} feed entries from {source.name}",
            extra={"source_id": source.id},
        )
        return items

    @staticmethod
    def _entry_link(entry) -> str:
        """The item's own link, or empty when the feed gives none.

        feedparser copies a ``<guid>`` into ``link`` when an item has no
        ``<link>``; such a guid is an identifier, not a page to send.
        """
        for link in entry.get("links", []):
            if link.get("rel", "alternate") == "alternate" and link.get("href"):
                return strip_cdata(link["href"])
        if entry.get("guidislink"):
            return ""
        return strip_cdata(entry.get("link"))

    @staticmethod
    def _published_at(entry) -> Optional[str]:
        """Canonical publish time, or None when absent or unparsable."""
        for field in ("published_parsed", "updated_parsed"):
            parsed_time = entry.get(field)
            if not parsed_time:
                continue
            try:
                timestamp = calendar.timegm(parsed_time)
                return format_timestamp(datetime.fromtimestamp(timestamp, tz=timezone.utc))
            except (TypeError, ValueError, OverflowError):
                continue
        return None


class PageScrapeParser(ContentParser):
    """Detail-page link extraction from plain HTML pages.

    Only links whose host contains a rule key and whose path contains that
    rule's value are kept, which filters navigation, footer and social links
    out of the page.
    """

    source_type = SourceType.PAGE_SCRAPE

    def __init__(self, detail_page_rules: Dict[str, str],
                 max_candidates: int = DEFAULT_MAX_CANDIDATES):
        super().__init__(max_candidates)
        self.detail_page_rules = dict(detail_page_rules)

    def extract(self, raw: RawContent, source: Source) -> List[CandidateItem]:
        soup = BeautifulSoup(raw, "html.parser")
        base_url = source.url or ""

        links: List[str] = []
        seen = set()
        for anchor in soup.find_all("a", href=True):
            link = self._absolute_link(anchor["href"], base_url)
            if link is None or link in seen or not self.is_detail_page(link):
                continue
            seen.add(link)
            links.append(link)
            if len(links) >= self.max_candidates:
                break

        self.logger.debug(
            f"Kept {len(links)} detail links from {source.name}",
            extra={"source_id": source.id},
        )
        return [CandidateItem(title=source.name, link=link, external_id=link) for link in links]

    @staticmethod
    def _absolute_link(href: str, base_url: str) -> Optional[str]:
        href = href.strip()
        if not href or href.startswith("#") or href.lower().startswith(_PSEUDO_SCHEMES):
            return None
        link, _fragment = urldefrag(urljoin(base_url, href))
        if urlparse(link).scheme not in ("http", "https"):
            return None
        return link

    def is_detail_page(self, link: str) -> bool:
        parsed = urlparse(link)
        host = parsed.netloc.lower()
        return any(
            host_part.lower() in host and path_part in parsed.path
            for host_part, path_part in self.detail_page_rules.items()
        )


def build_parsers(polling_settings) -> Dict[SourceType, ContentParser]:
    """One parser per source type, configured from polling settings."""
    limit = polling_settings.max_candidates_per_source
    return {
        SourceType.FEED: FeedContentParser(max_candidates=limit),
        SourceType.PAGE_SCRAPE: PageScrapeParser(
            polling_settings.detail_page_rules, max_candidates=limit
        ),
    }
