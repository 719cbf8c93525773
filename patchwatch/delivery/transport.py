"""
Messaging Transport
===================

Outbound messaging boundary. A transport sends one text payload and reports
whether it was sent, rate limited (with the server's retry delay) or failed.
Retrying is the notifier's job, not the transport's.
"""

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Optional, Protocol

from telegram import Bot, LinkPreviewOptions
from telegram.error import RetryAfter, TelegramError

from ..utils.logging import get_logger_for_component

TELEGRAM_MAX_MESSAGE_LENGTH = 4096


class SendStatus(str, Enum):
    SENT = "sent"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"


@dataclass
class SendOutcome:
    """What happened to one send attempt."""

    status: SendStatus
    retry_after: Optional[float] = None
    error: Optional[str] = None

    @classmethod
    def sent(cls) -> "SendOutcome":
        return cls(SendStatus.SENT)

    @classmethod
    def rate_limited(cls, retry_after: float, error: Optional[str] = None) -> "SendOutcome":
        return cls(SendStatus.RATE_LIMITED, retry_after=retry_after, error=error)

    @classmethod
    def failed(cls, error: str) -> "SendOutcome":
        return cls(SendStatus.FAILED, error=error)


class MessageTransport(Protocol):
    max_message_length: int

    async def send(self, text: str) -> SendOutcome:
        ...

    async def close(self) -> None:
        ...


def _retry_after_seconds(value) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


class TelegramTransport:
    """Sends plain-text messages to one Telegram chat."""

    max_message_length = TELEGRAM_MAX_MESSAGE_LENGTH

    def __init__(self, bot: Bot, chat_id: str, disable_web_page_preview: bool = False):
        self.bot = bot
        self.chat_id = chat_id
        self.disable_web_page_preview = disable_web_page_preview
        self._initialized = False
        self.logger = get_logger_for_component("telegram_transport")

    @classmethod
    def from_settings(cls, telegram_settings) -> "TelegramTransport":
        return cls(
            bot=Bot(token=telegram_settings.bot_token),
            chat_id=telegram_settings.chat_id,
            disable_web_page_preview=telegram_settings.disable_web_page_preview,
        )

    async def send(self, text: str) -> SendOutcome:
        try:
            # opens the bot's HTTP client that close() later shuts down
            if not self._initialized:
                await self.bot.initialize()
                self._initialized = True
            await self.bot.send_message(
                chat_id=self.chat_id,
                text=text,
                link_preview_options=LinkPreviewOptions(
                    is_disabled=self.disable_web_page_preview
                ),
            )
            return SendOutcome.sent()

        except RetryAfter as e:
            retry_after = _retry_after_seconds(e.retry_after)
            self.logger.warning(f"Rate limited by Telegram, retry after {retry_after}s")
            return SendOutcome.rate_limited(retry_after, error=str(e))

        except TelegramError as e:
            self.logger.error(f"Telegram error sending to {self.chat_id}: {e}")
            return SendOutcome.failed(str(e))

    async def close(self) -> None:
        await self.bot.shutdown()
        self._initialized = False
