"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for PatchWatch tests.

Pipeline tests run against a real SQLite store in a temporary directory, with
in-process fakes standing in for HTTP fetching and Telegram delivery.
"""

import pytest
import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before any imports
os.environ["PATCHWATCH_TELEGRAM__BOT_TOKEN"] = "123456:ABC-DEF1234ghIkl-zyx57W2v1u123ew11_test"
os.environ["PATCHWATCH_DEBUG"] = "true"


TEST_CHAT_ID = "-1001234567890"


# ============================================================================
# Fakes
# ============================================================================


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeFetcher:
    """Serves canned bodies by URL; unknown URLs fail like an HTTP 404."""

    def __init__(self, clock: FakeClock = None, seconds_per_fetch: float = 0.0):
        self.pages = {}
        self.requested = []
        self.clock = clock
        self.seconds_per_fetch = seconds_per_fetch

    @asynccontextmanager
    async def get_session(self):
        yield None

    async def fetch(self, url, session, timeout=None):
        from patchwatch.processing.fetcher import FetchResult
        from patchwatch.utils.exceptions import ErrorCode

        self.requested.append(url)
        if self.clock is not None:
            self.clock.advance(self.seconds_per_fetch)

        if url not in self.pages:
            return FetchResult(url=url, success=False, status=404, error="HTTP 404: Not Found",
                               error_code=ErrorCode.FEED_HTTP_STATUS)
        body = self.pages[url]
        if isinstance(body, str):
            body = body.encode("utf-8")
        return FetchResult(url=url, success=True, content=body, status=200)


class FakeTransport:
    """Records sent messages; replays queued outcomes before succeeding."""

    max_message_length = 4096

    def __init__(self, outcomes=None):
        self.outcomes = list(outcomes or [])
        self.sent = []
        self.attempts = 0
        self.closed = False

    async def send(self, text):
        from patchwatch.delivery.transport import SendOutcome

        self.attempts += 1
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if outcome.status.value != "sent":
                return outcome
        self.sent.append(text)
        return SendOutcome.sent()

    async def close(self):
        self.closed = True


# ============================================================================
# Feed content helpers
# ============================================================================


def build_rss(items, title="Test Feed"):
    """Render ``(title, link, pub_date)`` tuples as an RSS 2.0 document."""
    entries = []
    for item_title, link, pub_date in items:
        parts = [f"<title>{item_title}</title>"]
        if link is not None:
            parts.append(f"<link>{link}</link>")
        if pub_date is not None:
            parts.append(f"<pubDate>{pub_date}</pubDate>")
        entries.append("<item>" + "".join(parts) + "</item>")
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel>'
        f"<title>{title}</title><link>https://example.com/</link>"
        + "".join(entries)
        + "</channel></rss>"
    )


@pytest.fixture
def rss():
    return build_rss


# ============================================================================
# Settings and store fixtures
# ============================================================================


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "patchwatch_test.db")


@pytest.fixture
def test_settings(db_path):
    """Fully configured settings on the SQLite backend."""
    from patchwatch.config.settings import (
        PatchWatchSettings,
        PollingSettings,
        StoreSettings,
        TelegramSettings,
    )

    return PatchWatchSettings(
        _env_file=None,
        store=StoreSettings(backend="sqlite", sqlite_path=db_path),
        telegram=TelegramSettings(
            bot_token="123456:ABC-DEF1234ghIkl-zyx57W2v1u123ew11_test",
            chat_id=TEST_CHAT_ID,
        ),
        polling=PollingSettings(),
    )


@pytest.fixture
def sqlite_store(db_path):
    """SQLite store with a fresh schema."""
    from patchwatch.storage import SqliteStore

    store = SqliteStore.from_path(db_path)
    yield store
    store.db.close_all_connections()


@pytest.fixture
def source_repository(sqlite_store):
    from patchwatch.storage import SourceRepository

    return SourceRepository(sqlite_store)


@pytest.fixture
def item_repository(sqlite_store):
    from patchwatch.storage import ItemRepository

    return ItemRepository(sqlite_store)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_fetcher(clock):
    return FakeFetcher(clock=clock)


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def no_sleep():
    """Async sleep replacement that records requested delays."""
    delays = []

    async def sleep(seconds):
        delays.append(seconds)

    sleep.delays = delays
    return sleep


@pytest.fixture
def make_transport():
    """Factory for transports preloaded with send outcomes."""
    return FakeTransport
