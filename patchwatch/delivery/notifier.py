"""
Batched Notifier
================

A run accumulates one summary per new item and flushes them as a single
message. Delivery retries only on rate limiting: it waits the delay the
transport reports plus a safety margin, up to a bounded number of attempts.
Any other failure is returned immediately.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Sequence

from ..utils.exceptions import DeliveryError, ErrorCode
from ..utils.logging import get_logger_for_component
from .transport import MessageTransport, SendStatus

DIGEST_HEADER = "🎮 New updates ({count})"


@dataclass
class DeliveryResult:
    """Result of one batched delivery."""

    success: bool
    attempts: int
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None
    waited_seconds: float = 0.0
    delivery_time: Optional[datetime] = None

    def __post_init__(self):
        if not self.delivery_time:
            self.delivery_time = datetime.now(timezone.utc)


def format_digest(summaries: Sequence[str], max_length: Optional[int] = None) -> str:
    """Join item summaries under a header, blank-line separated.

    When ``max_length`` is given the digest is cut at an item boundary and
    ends with a count of the items left out.
    """
    header = DIGEST_HEADER.format(count=len(summaries))
    text = header + "\n\n" + "\n\n".join(summaries)
    if max_length is None or len(text) <= max_length:
        return text

    kept: List[str] = []
    for index, summary in enumerate(summaries):
        remaining = len(summaries) - index - 1
        footer = f"\n\n… and {remaining} more" if remaining else ""
        candidate = header + "\n\n" + "\n\n".join(kept + [summary])
        if len(candidate + footer) > max_length:
            break
        kept.append(summary)

    omitted = len(summaries) - len(kept)
    text = header + "\n\n" + "\n\n".join(kept)
    footer = f"\n\n… and {omitted} more"
    return (text + footer)[:max_length]


class Notifier:
    """Delivers one text payload through a transport with rate-limit backoff."""

    def __init__(
        self,
        transport: MessageTransport,
        max_attempts: int = 3,
        retry_margin_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize notifier.

        Args:
            transport: Outbound messaging transport
            max_attempts: Total send attempts when rate limited
            retry_margin_seconds: Added to every server-provided retry delay
            sleep: Awaitable sleep, replaceable for tests
        """
        self.transport = transport
        self.max_attempts = max_attempts
        self.retry_margin_seconds = retry_margin_seconds
        self.sleep = sleep
        self.logger = get_logger_for_component("notifier")

    @classmethod
    def from_settings(cls, transport: MessageTransport, telegram_settings) -> "Notifier":
        return cls(
            transport,
            max_attempts=telegram_settings.max_attempts,
            retry_margin_seconds=telegram_settings.retry_margin_seconds,
        )

    async def deliver(self, text: str) -> DeliveryResult:
        waited = 0.0
        outcome = None

        for attempt in range(1, self.max_attempts + 1):
            outcome = await self.transport.send(text)

            if outcome.status == SendStatus.SENT:
                self.logger.info(f"Notification delivered on attempt {attempt}")
                return DeliveryResult(success=True, attempts=attempt, waited_seconds=waited)

            if outcome.status == SendStatus.FAILED:
                self.logger.error(f"Notification failed: {outcome.error}")
                return DeliveryResult(
                    success=False,
                    attempts=attempt,
                    error=outcome.error,
                    error_code=ErrorCode.DELIVERY_REJECTED,
                    waited_seconds=waited,
                )

            if attempt < self.max_attempts:
                delay = (outcome.retry_after or 0.0) + self.retry_margin_seconds
                self.logger.warning(
                    f"Rate limited (attempt {attempt}/{self.max_attempts}), waiting {delay:.1f}s"
                )
                await self.sleep(delay)
                waited += delay

        error = DeliveryError(
            f"Still rate limited after {self.max_attempts} attempts",
            attempts=self.max_attempts,
            retry_after=outcome.retry_after if outcome else None,
            error_code=ErrorCode.DELIVERY_RATE_LIMITED,
        )
        self.logger.error(str(error), extra=error.to_dict())
        return DeliveryResult(
            success=False,
            attempts=self.max_attempts,
            error=str(error),
            error_code=ErrorCode.DELIVERY_RATE_LIMITED,
            waited_seconds=waited,
        )

    async def deliver_digest(self, summaries: Sequence[str]) -> Optional[DeliveryResult]:
        """Deliver all summaries as one message; nothing is sent for an empty batch."""
        if not summaries:
            self.logger.info("No new items, skipping notification")
            return None
        max_length = getattr(self.transport, "max_message_length", None)
        return await self.deliver(format_digest(summaries, max_length))
