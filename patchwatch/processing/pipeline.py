"""
Polling Pipeline Orchestrator
=============================

One invocation of the poller: select this run's sources, fetch and parse
each, keep the candidates whose fingerprints are new, persist them, and send
one notification for everything found.

Run states::

    init -> selecting_sources -> processing_source* -> notifying -> done
                                        |
                                        +-> aborted (time budget) -> notifying

Two budgets bound the work, elapsed time and accepted items, and both are
checked before every source and every candidate. A source ceiling caps the
window a custom scheduler hands over. Running out of any of them stops
new work but never discards what was already persisted: the run still goes
on to notify.

Failure containment:
- fetch and parse problems skip the source
- a failed insert skips the item; a duplicate-insert rejection counts as seen
- a failed store query ends the source loop and fails the run
- delivery problems are reported in the result, items stay persisted
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..config.settings import PatchWatchSettings, load_settings
from ..database.models import RunBudget, Source, StoredItem
from ..delivery.notifier import Notifier
from ..delivery.transport import MessageTransport, TelegramTransport
from ..storage import ItemRepository, SourceRepository, Store, create_store
from ..utils.exceptions import (
    ConfigurationError,
    DuplicateRecordError,
    ErrorCode,
    FeedError,
    StoreError,
    handle_exception,
)
from ..utils.logging import PerformanceLogger, get_logger_for_component
from .deduplicator import Deduplicator
from .fetcher import SourceFetcher
from .fingerprint import fingerprint_item
from .parsers import ContentParser, build_parsers
from .scheduler import SourceScheduler


class RunState(str, Enum):
    INIT = "init"
    SELECTING_SOURCES = "selecting_sources"
    PROCESSING_SOURCE = "processing_source"
    ABORTED = "aborted"
    NOTIFYING = "notifying"
    DONE = "done"


@dataclass
class PollResult:
    """Structured summary returned to whatever triggered the run."""

    ok: bool = True
    processed_sources: List[str] = field(default_factory=list)
    new_count: int = 0
    time_ms: int = 0
    state: RunState = RunState.INIT
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    failed_sources: List[str] = field(default_factory=list)
    skipped_items: int = 0
    budget_exhausted: Optional[str] = None
    notified: bool = False
    notification_error: Optional[str] = None
    error: Optional[str] = None
    settings_present: Optional[Dict[str, bool]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "ok": self.ok,
            "runId": self.run_id,
            "processedSources": list(self.processed_sources),
            "newCount": self.new_count,
            "timeMs": self.time_ms,
            "state": self.state.value,
            "failedSources": list(self.failed_sources),
            "skippedItems": self.skipped_items,
            "budgetExhausted": self.budget_exhausted,
            "notified": self.notified,
            "notificationError": self.notification_error,
        }
        if self.error:
            data["error"] = self.error
        if self.settings_present is not None:
            data["introspection"] = True
            data["settings"] = dict(self.settings_present)
        return data


class PollingPipeline:
    """Runs one poll over the configured sources."""

    def __init__(
        self,
        settings: PatchWatchSettings,
        store: Store,
        transport: MessageTransport,
        fetcher: Optional[SourceFetcher] = None,
        parsers: Optional[Dict[Any, ContentParser]] = None,
        scheduler: Optional[SourceScheduler] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the pipeline.

        Args:
            settings: Resolved application settings
            store: Record store backend
            transport: Outbound messaging transport
            fetcher: Source fetcher (built from settings when omitted)
            parsers: Parser per source type (built from settings when omitted)
            scheduler: Source scheduler (built from settings when omitted)
            notifier: Notifier (built around ``transport`` when omitted)
            clock: Monotonic clock used for the time budget
        """
        polling = settings.polling
        self.settings = settings
        self.store = store
        self.sources = SourceRepository(store, settings.store.sources_resource)
        self.items = ItemRepository(store, settings.store.items_resource)
        self.fetcher = fetcher or SourceFetcher.from_settings(polling)
        self.parsers = parsers or build_parsers(polling)
        self.scheduler = scheduler or SourceScheduler.from_settings(polling)
        self.notifier = notifier or Notifier.from_settings(transport, settings.telegram)
        self.clock = clock
        self.logger = get_logger_for_component("pipeline")

    def _transition(self, result: PollResult, state: RunState) -> None:
        self.logger.debug(f"Run {result.run_id}: {result.state.value} -> {state.value}")
        result.state = state

    async def run(self, epoch: Optional[int] = None) -> PollResult:
        """Execute one poll.

        Args:
            epoch: Rotation epoch for source selection (current minute if omitted)

        Returns:
            PollResult summary; store query failures are reported, not raised
        """
        budget = RunBudget.from_settings(self.settings.polling, clock=self.clock)
        deduplicator = Deduplicator(self.items, self.settings.polling.dedup_lookback)
        result = PollResult()
        summaries: List[str] = []

        self.logger.info(f"Starting poll run {result.run_id}")

        try:
            self._transition(result, RunState.SELECTING_SOURCES)
            sources = await self.sources.get_enabled_sources()
            window = self.scheduler.select(sources, epoch)

            async with self.fetcher.get_session() as session:
                for source in window:
                    if budget.time_exceeded():
                        self._abort(result, "time")
                        break
                    if budget.items_exhausted(result.new_count):
                        result.budget_exhausted = "items"
                        break
                    if budget.sources_exhausted(len(result.processed_sources)):
                        result.budget_exhausted = "sources"
                        break

                    self._transition(result, RunState.PROCESSING_SOURCE)
                    result.processed_sources.append(source.name)
                    await self._process_source(
                        source, session, budget, deduplicator, result, summaries
                    )
                    if result.state == RunState.ABORTED:
                        break

        except StoreError as e:
            self.logger.error(f"Run {result.run_id} abandoned: {e}", extra=e.to_dict())
            result.ok = False
            result.error = str(e)
        except Exception as e:
            error = handle_exception(e, self.logger, "poll run", {"run_id": result.run_id})
            result.ok = False
            result.error = str(error)

        # Items persisted before a failure are notified too; dedup would
        # suppress them on every later run.
        await self._notify(result, summaries)

        self._transition(result, RunState.DONE)
        result.time_ms = budget.elapsed_ms()
        self.logger.info(
            f"Poll run {result.run_id} finished: {result.new_count} new items from "
            f"{len(result.processed_sources)} sources in {result.time_ms}ms"
        )
        return result

    def _abort(self, result: PollResult, reason: str) -> None:
        self.logger.warning(f"Run {result.run_id}: time budget exceeded, stopping early")
        result.budget_exhausted = reason
        self._transition(result, RunState.ABORTED)

    async def _process_source(
        self,
        source: Source,
        session,
        budget: RunBudget,
        deduplicator: Deduplicator,
        result: PollResult,
        summaries: List[str],
    ) -> None:
        """Fetch, parse, deduplicate and persist one source."""
        log = get_logger_for_component("pipeline", source_id=source.id, run_id=result.run_id)

        fetched = await self.fetcher.fetch(source.url, session)
        if not fetched.success:
            log.warning(f"Skipping {source.name}: {fetched.error}")
            result.failed_sources.append(source.name)
            return

        try:
            candidates = self.parsers[source.type].extract(fetched.content, source)
        except Exception as e:
            error = FeedError(
                f"Could not extract items from {source.name}: {e}",
                feed_url=source.url,
                error_code=ErrorCode.FEED_PARSE_ERROR,
            )
            log.error(str(error), extra=error.to_dict(), exc_info=True)
            result.failed_sources.append(source.name)
            return

        # StoreError here is fatal to the run
        await deduplicator.load(source.id)

        with PerformanceLogger(log, f"persisting candidates of {source.name}",
                               candidates=len(candidates)):
            for item in candidates:
                if budget.time_exceeded():
                    self._abort(result, "time")
                    return
                if budget.items_exhausted(result.new_count):
                    result.budget_exhausted = "items"
                    return

                content_hash = fingerprint_item(item)
                if not deduplicator.is_new(source.id, content_hash):
                    continue

                try:
                    await self.items.create_item(
                        StoredItem.from_candidate(source.id, item, content_hash)
                    )
                except DuplicateRecordError:
                    # another run stored it first
                    log.info(f"Already stored: {item.title}")
                    deduplicator.remember(source.id, content_hash)
                    continue
                except StoreError as e:
                    log.warning(f"Insert failed for {item.link}: {e}")
                    result.skipped_items += 1
                    continue

                deduplicator.remember(source.id, content_hash)
                summaries.append(item.summary_line())
                result.new_count += 1
                log.info(f"New item: {item.title}")

    async def _notify(self, result: PollResult, summaries: List[str]) -> None:
        if not summaries:
            return

        self._transition(result, RunState.NOTIFYING)
        try:
            delivery = await self.notifier.deliver_digest(summaries)
        except Exception as e:
            error = handle_exception(e, self.logger, "notification")
            result.notification_error = str(error)
            return

        result.notified = bool(delivery and delivery.success)
        if delivery and not delivery.success:
            result.notification_error = delivery.error


async def run_poll(
    settings: Optional[PatchWatchSettings] = None,
    store: Optional[Store] = None,
    transport: Optional[MessageTransport] = None,
    epoch: Optional[int] = None,
) -> PollResult:
    """Invocation entry point for schedulers: never raises.

    Settings are loaded from the environment when not given. In
    introspection mode the result only reports which required settings are
    present and no service is contacted.
    """
    logger = get_logger_for_component("invocation")
    started = time.monotonic()

    def elapsed_ms() -> int:
        return int((time.monotonic() - started) * 1000)

    try:
        if settings is None:
            settings = load_settings()

        if settings.introspect:
            return PollResult(
                ok=True,
                state=RunState.DONE,
                settings_present=settings.required_settings(),
                time_ms=elapsed_ms(),
            )

        settings.validate_configuration()
    except ConfigurationError as e:
        logger.error(str(e), extra=e.to_dict())
        return PollResult(ok=False, error=e.user_message, time_ms=elapsed_ms())

    owns_store = store is None
    owns_transport = transport is None
    try:
        store = store or create_store(settings.store)
        transport = transport or TelegramTransport.from_settings(settings.telegram)
        pipeline = PollingPipeline(settings, store, transport)
        return await pipeline.run(epoch=epoch)
    except Exception as e:
        error = handle_exception(e, logger, "poll invocation")
        return PollResult(ok=False, error=str(error), time_ms=elapsed_ms())
    finally:
        for resource, owned in ((store, owns_store), (transport, owns_transport)):
            if resource is None or not owned:
                continue
            try:
                await resource.close()
            except Exception as e:
                logger.warning(f"Error closing {type(resource).__name__}: {e}")
