"""
Notifier Tests
==============

Unit tests for the batched notifier, digest formatting and the Telegram
transport.
"""

import asyncio
import time
from datetime import timedelta

import pytest
from unittest.mock import AsyncMock, MagicMock
from telegram.error import Forbidden, InvalidToken, RetryAfter

from patchwatch.config.settings import TelegramSettings
from patchwatch.delivery.notifier import Notifier, format_digest
from patchwatch.delivery.transport import (
    SendOutcome,
    SendStatus,
    TelegramTransport,
    _retry_after_seconds,
)
from patchwatch.utils.exceptions import ErrorCode


class TestFormatDigest:

    def test_header_and_blank_line_separated_items(self):
        text = format_digest(["• A\nhttps://a", "• B\nhttps://b"])

        assert text == "🎮 New updates (2)\n\n• A\nhttps://a\n\n• B\nhttps://b"

    def test_short_digest_untouched_by_limit(self):
        summaries = ["• A\nhttps://a"]

        assert format_digest(summaries, max_length=4096) == format_digest(summaries)

    def test_long_digest_truncated_at_item_boundary(self):
        summaries = [f"• Item {n}\nhttps://example.com/{n}/" + "x" * 80 for n in range(100)]

        text = format_digest(summaries, max_length=1000)

        assert len(text) <= 1000
        assert text.startswith("🎮 New updates (100)")
        assert "• Item 0\n" in text
        assert "• Item 99\n" not in text
        kept = text.count("• Item ")
        assert text.endswith(f"… and {100 - kept} more")


class TestNotifier:
    """Test suite for Notifier retry behaviour."""

    @pytest.mark.asyncio
    async def test_first_attempt_success(self, make_transport, no_sleep):
        transport = make_transport()
        notifier = Notifier(transport, sleep=no_sleep)

        result = await notifier.deliver("hello")

        assert result.success
        assert result.attempts == 1
        assert transport.sent == ["hello"]
        assert no_sleep.delays == []

    @pytest.mark.asyncio
    async def test_rate_limited_then_success(self, make_transport, no_sleep):
        transport = make_transport([SendOutcome.rate_limited(2)])
        notifier = Notifier(transport, retry_margin_seconds=1.0, sleep=no_sleep)

        result = await notifier.deliver("hello")

        assert result.success
        assert result.attempts == 2
        assert no_sleep.delays == [3.0]
        assert result.waited_seconds == 3.0
        assert transport.sent == ["hello"]

    @pytest.mark.asyncio
    async def test_rate_limit_wait_is_real_time(self, make_transport):
        transport = make_transport([SendOutcome.rate_limited(0.2)])
        notifier = Notifier(transport, retry_margin_seconds=0.05, sleep=asyncio.sleep)

        started = time.monotonic()
        result = await notifier.deliver("hello")

        assert result.success
        assert time.monotonic() - started >= 0.2

    @pytest.mark.asyncio
    async def test_non_rate_limit_failure_not_retried(self, make_transport, no_sleep):
        transport = make_transport([SendOutcome.failed("Forbidden: bot was blocked")])
        notifier = Notifier(transport, sleep=no_sleep)

        result = await notifier.deliver("hello")

        assert not result.success
        assert result.attempts == 1
        assert result.error_code == ErrorCode.DELIVERY_REJECTED
        assert transport.attempts == 1
        assert no_sleep.delays == []

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, make_transport, no_sleep):
        transport = make_transport([SendOutcome.rate_limited(1)] * 5)
        notifier = Notifier(transport, max_attempts=3, sleep=no_sleep)

        result = await notifier.deliver("hello")

        assert not result.success
        assert result.attempts == 3
        assert result.error_code == ErrorCode.DELIVERY_RATE_LIMITED
        assert transport.attempts == 3
        assert transport.sent == []
        # no wait after the final attempt
        assert len(no_sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_empty_digest_sends_nothing(self, make_transport, no_sleep):
        transport = make_transport()
        notifier = Notifier(transport, sleep=no_sleep)

        assert await notifier.deliver_digest([]) is None
        assert transport.attempts == 0

    @pytest.mark.asyncio
    async def test_digest_sent_as_one_message(self, make_transport, no_sleep):
        transport = make_transport()
        notifier = Notifier(transport, sleep=no_sleep)

        result = await notifier.deliver_digest(["• A\nhttps://a", "• B\nhttps://b"])

        assert result.success
        assert len(transport.sent) == 1
        assert "🎮 New updates (2)" in transport.sent[0]

    def test_from_settings(self, make_transport):
        notifier = Notifier.from_settings(
            make_transport(), TelegramSettings(max_attempts=5, retry_margin_seconds=2.0)
        )

        assert notifier.max_attempts == 5
        assert notifier.retry_margin_seconds == 2.0


class TestTelegramTransport:
    """Test suite for TelegramTransport."""

    @pytest.fixture
    def mock_bot(self):
        bot = MagicMock()
        bot.send_message = AsyncMock()
        bot.initialize = AsyncMock()
        bot.shutdown = AsyncMock()
        return bot

    @pytest.fixture
    def transport(self, mock_bot):
        return TelegramTransport(mock_bot, chat_id="-1001234567890", disable_web_page_preview=True)

    @pytest.mark.asyncio
    async def test_send_success(self, transport, mock_bot):
        outcome = await transport.send("hello")

        assert outcome.status == SendStatus.SENT
        kwargs = mock_bot.send_message.call_args.kwargs
        assert kwargs["chat_id"] == "-1001234567890"
        assert kwargs["text"] == "hello"
        assert kwargs["link_preview_options"].is_disabled is True

    @pytest.mark.asyncio
    async def test_retry_after_reported(self, transport, mock_bot):
        mock_bot.send_message.side_effect = RetryAfter(5)

        outcome = await transport.send("hello")

        assert outcome.status == SendStatus.RATE_LIMITED
        assert outcome.retry_after == 5.0

    @pytest.mark.asyncio
    async def test_other_errors_fail(self, transport, mock_bot):
        mock_bot.send_message.side_effect = Forbidden("bot was blocked by the user")

        outcome = await transport.send("hello")

        assert outcome.status == SendStatus.FAILED
        assert "blocked" in outcome.error

    @pytest.mark.asyncio
    async def test_bot_initialized_once_before_sending(self, transport, mock_bot):
        await transport.send("one")
        await transport.send("two")

        mock_bot.initialize.assert_awaited_once()
        assert mock_bot.send_message.await_count == 2

    @pytest.mark.asyncio
    async def test_initialize_failure_is_failed_send(self, transport, mock_bot):
        mock_bot.initialize.side_effect = InvalidToken()

        outcome = await transport.send("hello")

        assert outcome.status == SendStatus.FAILED
        mock_bot.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_close_shuts_down_bot(self, transport, mock_bot):
        await transport.close()

        mock_bot.shutdown.assert_awaited_once()

    def test_retry_after_seconds_accepts_timedelta(self):
        assert _retry_after_seconds(timedelta(seconds=4)) == 4.0
        assert _retry_after_seconds(7) == 7.0
