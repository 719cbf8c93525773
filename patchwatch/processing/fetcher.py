"""
Source Fetcher
==============

Bounded-time HTTP retrieval of source content. Every failure is soft: the
caller gets a FetchResult describing it and moves on to the next source.
There are no retries within a run; the next scheduled run is the retry.
"""

import asyncio
import ssl
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import aiohttp
import certifi

from ..utils.exceptions import ErrorCode
from ..utils.logging import get_logger_for_component

DEFAULT_USER_AGENT = "PatchWatch/1.0"


@dataclass
class FetchResult:
    """Result of one source fetch."""

    url: str
    success: bool
    content: Optional[bytes] = None
    status: Optional[int] = None
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None
    fetch_time: Optional[datetime] = None
    duration_seconds: float = 0.0

    def __post_init__(self):
        if not self.fetch_time:
            self.fetch_time = datetime.now(timezone.utc)


class SourceFetcher:
    """Sequential source fetcher with a hard per-request timeout."""

    def __init__(self, timeout: float = 7.0, user_agent: str = DEFAULT_USER_AGENT):
        """Initialize fetcher.

        Args:
            timeout: Total seconds allowed for one request, body included
            user_agent: Identifying User-Agent header
        """
        self.timeout = timeout
        self.user_agent = user_agent
        self.logger = get_logger_for_component("fetcher")
        self.ssl_context = ssl.create_default_context(cafile=certifi.where())

    @classmethod
    def from_settings(cls, polling_settings) -> "SourceFetcher":
        return cls(
            timeout=polling_settings.fetch_timeout_seconds,
            user_agent=polling_settings.user_agent,
        )

    @asynccontextmanager
    async def get_session(self):
        """Get configured aiohttp session."""
        connector = aiohttp.TCPConnector(ssl=self.ssl_context, limit_per_host=2)
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "application/rss+xml, application/atom+xml, application/xml, text/html;q=0.9, */*;q=0.8",
        }
        async with aiohttp.ClientSession(connector=connector, headers=headers) as session:
            yield session

    async def fetch(self, url: str, session: aiohttp.ClientSession,
                    timeout: Optional[float] = None) -> FetchResult:
        """Fetch raw content from ``url``.

        Args:
            url: Source URL
            session: Session from ``get_session()``
            timeout: Override of the configured per-request timeout

        Returns:
            FetchResult with content or error information
        """
        limit = timeout or self.timeout
        started = datetime.now(timezone.utc)

        def elapsed() -> float:
            return (datetime.now(timezone.utc) - started).total_seconds()

        self.logger.debug(f"Fetching {url}")
        try:
            async with session.get(url, timeout=aiohttp.ClientTimeout(total=limit)) as response:
                if response.status < 200 or response.status >= 300:
                    error_msg = f"HTTP {response.status}: {response.reason}"
                    self.logger.warning(f"Fetch failed for {url}: {error_msg}")
                    return FetchResult(
                        url=url,
                        success=False,
                        status=response.status,
                        error=error_msg,
                        error_code=ErrorCode.FEED_HTTP_STATUS,
                        fetch_time=started,
                        duration_seconds=elapsed(),
                    )

                content = await response.read()

        except asyncio.TimeoutError:
            error_msg = f"Request timeout after {limit}s"
            self.logger.warning(f"Fetch timeout for {url}: {error_msg}")
            return FetchResult(
                url=url,
                success=False,
                error=error_msg,
                error_code=ErrorCode.FEED_FETCH_TIMEOUT,
                fetch_time=started,
                duration_seconds=elapsed(),
            )

        except aiohttp.ClientError as e:
            error_msg = f"Fetch error: {e}"
            self.logger.warning(f"Fetch failed for {url}: {error_msg}")
            return FetchResult(
                url=url,
                success=False,
                error=error_msg,
                error_code=ErrorCode.FEED_NETWORK_ERROR,
                fetch_time=started,
                duration_seconds=elapsed(),
            )

        self.logger.info(f"Fetched {len(content)} bytes from {url} in {elapsed():.2f}s")
        return FetchResult(
            url=url,
            success=True,
            content=content,
            status=response.status,
            fetch_time=started,
            duration_seconds=elapsed(),
        )
