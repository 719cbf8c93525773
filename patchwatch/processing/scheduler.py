"""
Source Scheduler
================

Chooses which sources a run polls. There is no stored cursor: the window
start is derived from a coarse wall-clock epoch, so successive short runs
walk around the source list on their own.

Adding or removing sources between runs shifts the window, which can skip
or repeat a source for a cycle. Items are still picked up on a later pass.
"""

import time
from typing import Callable, List, Optional, Sequence, TypeVar

from ..database.models import Source
from ..utils.logging import get_logger_for_component

T = TypeVar("T")


def current_epoch_minute(clock: Callable[[], float] = time.time) -> int:
    """Whole minutes since the Unix epoch."""
    return int(clock() // 60)


def rotate_window(items: Sequence[T], epoch: int, size: int) -> List[T]:
    """Contiguous window of at most ``size`` items starting at ``epoch mod len``.

    Wraps around the end of the sequence and never repeats an item.
    """
    count = len(items)
    if count == 0 or size <= 0:
        return []
    start = epoch % count
    return [items[(start + offset) % count] for offset in range(min(size, count))]


def is_pollable(source: Source, placeholder_marker: Optional[str]) -> bool:
    """Enabled, has a URL, and the URL is not an unfilled placeholder."""
    if not source.enabled or not source.url:
        return False
    if placeholder_marker and placeholder_marker in source.url:
        return False
    return True


class SourceScheduler:
    """Selects this run's sources from the enabled list."""

    def __init__(self, window_size: int, placeholder_marker: Optional[str] = None,
                 clock: Callable[[], float] = time.time):
        self.window_size = window_size
        self.placeholder_marker = placeholder_marker
        self.clock = clock
        self.logger = get_logger_for_component("scheduler")

    @classmethod
    def from_settings(cls, polling_settings, clock: Callable[[], float] = time.time) -> "SourceScheduler":
        return cls(
            window_size=polling_settings.max_sources_per_run,
            placeholder_marker=polling_settings.placeholder_marker,
            clock=clock,
        )

    def eligible(self, sources: Sequence[Source]) -> List[Source]:
        return [s for s in sources if is_pollable(s, self.placeholder_marker)]

    def select(self, sources: Sequence[Source], epoch: Optional[int] = None) -> List[Source]:
        """Pick the window of pollable sources for the given (or current) epoch."""
        pollable = self.eligible(sources)
        if epoch is None:
            epoch = current_epoch_minute(self.clock)

        window = rotate_window(pollable, epoch, self.window_size)
        self.logger.info(
            f"Selected {len(window)} of {len(pollable)} pollable sources "
            f"(epoch {epoch}): {', '.join(s.name for s in window) or 'none'}"
        )
        return window
