"""
PatchWatch - Update Poller
==========================

Polls game news feeds and pages for new posts, records them, and sends one
Telegram notification per run.

Main Components:
- Configuration: environment variables with Pydantic validation
- Storage: hosted REST store or local SQLite, behind one interface
- Processing: source rotation, fetching, feed/page extraction, dedup
- Delivery: batched Telegram notification with rate-limit backoff
"""

__version__ = "1.0.0"
__description__ = "Rate-limit-aware update poller for feeds and news pages"

from .config.settings import get_settings
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import PatchWatchError

__all__ = [
    "get_settings",
    "configure_application_logging",
    "get_logger_for_component",
    "PatchWatchError",
]
