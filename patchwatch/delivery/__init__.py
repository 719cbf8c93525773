"""
PatchWatch Delivery Module
==========================

Batched run notifications and the messaging transports behind them.
"""

from .notifier import DeliveryResult, Notifier, format_digest
from .transport import MessageTransport, SendOutcome, SendStatus, TelegramTransport

__all__ = [
    "DeliveryResult",
    "Notifier",
    "format_digest",
    "MessageTransport",
    "SendOutcome",
    "SendStatus",
    "TelegramTransport",
]
