"""
Source Scheduler Tests
======================

Rotation windows over the enabled source list.
"""

import pytest

from patchwatch.config.settings import PollingSettings
from patchwatch.database.models import Source
from patchwatch.processing.scheduler import (
    SourceScheduler,
    current_epoch_minute,
    is_pollable,
    rotate_window,
)


def make_sources(count, **overrides):
    return [
        Source(id=n, name=f"Source {n}", url=f"https://example.com/{n}.xml", **overrides)
        for n in range(count)
    ]


class TestRotateWindow:

    def test_window_starts_at_epoch_mod_length(self):
        assert rotate_window(["a", "b", "c", "d", "e"], 7, 2) == ["c", "d"]

    def test_window_wraps_around(self):
        assert rotate_window(["a", "b", "c", "d", "e"], 4, 2) == ["e", "a"]

    def test_window_never_repeats(self):
        assert rotate_window(["a", "b"], 1, 5) == ["b", "a"]

    def test_empty_list(self):
        assert rotate_window([], 7, 2) == []

    def test_zero_size(self):
        assert rotate_window(["a"], 0, 0) == []

    @pytest.mark.parametrize("epoch", range(10))
    def test_successive_epochs_cover_every_item(self, epoch):
        items = list(range(5))
        covered = set()
        for offset in range(5):
            covered.update(rotate_window(items, epoch + offset, 1))

        assert covered == set(items)


class TestPollability:

    def test_placeholder_url_not_pollable(self):
        source = Source(id=1, name="Todo", url="PASTE_RSS_URL_HERE")

        assert not is_pollable(source, "PASTE_RSS_URL_HERE")

    def test_disabled_not_pollable(self):
        source = Source(id=1, name="Off", url="https://example.com/f.xml", enabled=False)

        assert not is_pollable(source, "PASTE_RSS_URL_HERE")

    def test_missing_url_not_pollable(self):
        assert not is_pollable(Source(id=1, name="No URL"), None)

    def test_regular_source_pollable(self):
        source = Source(id=1, name="Feed", url="https://example.com/f.xml")

        assert is_pollable(source, "PASTE_RSS_URL_HERE")


class TestSourceScheduler:
    """Test suite for SourceScheduler."""

    @pytest.fixture
    def scheduler(self):
        return SourceScheduler(window_size=2, placeholder_marker="PASTE_RSS_URL_HERE")

    def test_selects_window_for_epoch(self, scheduler):
        sources = make_sources(5)

        selected = scheduler.select(sources, epoch=7)

        assert [s.id for s in selected] == [2, 3]

    def test_no_sources(self, scheduler):
        assert scheduler.select([], epoch=7) == []

    def test_unpollable_sources_excluded_before_rotation(self, scheduler):
        sources = make_sources(3) + [
            Source(id=10, name="Placeholder", url="https://PASTE_RSS_URL_HERE"),
            Source(id=11, name="Disabled", url="https://example.com/x", enabled=False),
        ]

        selected = scheduler.select(sources, epoch=2)

        assert [s.id for s in selected] == [2, 0]

    def test_current_epoch_from_clock(self):
        scheduler = SourceScheduler(window_size=1, clock=lambda: 60 * 7 + 30)

        selected = scheduler.select(make_sources(5))

        assert [s.id for s in selected] == [2]

    def test_from_settings(self):
        scheduler = SourceScheduler.from_settings(PollingSettings(max_sources_per_run=3))

        assert scheduler.window_size == 3
        assert scheduler.placeholder_marker == "PASTE_RSS_URL_HERE"

    def test_current_epoch_minute(self):
        assert current_epoch_minute(lambda: 125.9) == 2
