"""Watch Runner: execute one watcher end to end."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from peddler import metrics
from peddler.config import settings
from peddler.detect.classifier import ClassifiedEvent, EventKind, classify
from peddler.errors import CollectorNetworkError, PersistenceError
from peddler.ingest.base import CollectorRegistry, RawItem, default_registry
from peddler.ingest.filters import FilterConfig
from peddler.logging_config import get_logger
from peddler.retry import retry_async
from peddler.settings_provider import Credentials
from peddler.store.base import Item, ItemStore, utcnow
from peddler.watchers import Watcher

logger = logging.getLogger(__name__)


@dataclass
class ItemOutcome:
    """Result of processing one collected item."""

    item_id: str
    ok: bool
    kind: Optional[EventKind] = None
    error: Optional[str] = None


@dataclass
class RunResult:
    """Outcome of a single watcher run."""

    watcher_id: str
    success: bool
    error: Optional[str] = None
    items_observed: int = 0
    new_items: list[ClassifiedEvent] = field(default_factory=list)
    price_drops: list[ClassifiedEvent] = field(default_factory=list)
    outcomes: list[ItemOutcome] = field(default_factory=list)
    execution_ms: float = 0.0
    disabled: bool = False

    @property
    def items_failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)

    @property
    def events(self) -> list[ClassifiedEvent]:
        """Events that should be notified, new items first."""
        return [*self.new_items, *self.price_drops]

    @classmethod
    def failed(cls, watcher_id: str, error: str, execution_ms: float = 0.0) -> "RunResult":
        return cls(watcher_id=watcher_id, success=False, error=error, execution_ms=execution_ms)


class WatchRunner:
    """
    Runs a watcher: collect, filter, classify and persist.

    ``run`` never raises. Collector failures fail the whole run, item
    failures are recorded per item and processing continues.
    """

    def __init__(
        self,
        store: ItemStore,
        credentials: Optional[Credentials] = None,
        registry: Optional[CollectorRegistry] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff: Optional[float] = None,
        sleep=asyncio.sleep,
    ):
        self.store = store
        self.credentials = credentials or Credentials()
        self.registry = registry or default_registry()
        self.timeout = timeout if timeout is not None else settings.collector_timeout_seconds
        self.max_attempts = max_attempts if max_attempts is not None else settings.collector_max_attempts
        self.backoff = backoff if backoff is not None else settings.collector_backoff_seconds
        self._sleep = sleep

    async def run(self, watcher: Watcher) -> RunResult:
        """
        Execute a watcher once.

        Args:
            watcher: Watcher to run

        Returns:
            RunResult, populated on every path
        """
        start = time.perf_counter()

        if not watcher.enabled:
            logger.info(f"Watcher {watcher.id} is disabled, skipping")
            return RunResult(watcher_id=watcher.id, success=True, disabled=True)

        marketplace = watcher.marketplace.value
        log = get_logger(__name__, watcher_id=watcher.id, marketplace=marketplace)
        log.info(f"Running watcher {watcher.id} ({marketplace}): {watcher.query!r}")

        try:
            raw_items = await self._collect(watcher)
        except Exception as e:
            elapsed = (time.perf_counter() - start) * 1000
            error = _describe(e)
            log.error(f"Watcher {watcher.id} failed: {error}")
            metrics.watcher_runs_total.labels(marketplace=marketplace, status="failed").inc()
            metrics.watcher_run_duration_seconds.labels(marketplace=marketplace).observe(elapsed / 1000)
            return RunResult.failed(watcher.id, error, execution_ms=elapsed)

        # Collectors may over-fetch, so every item is checked against the filters
        filters = FilterConfig.from_watcher(watcher)
        result = RunResult(watcher_id=watcher.id, success=True)
        filtered_out = 0

        for raw in raw_items:
            try:
                if not filters.matches(raw):
                    filtered_out += 1
                    continue
                event = await self._process_item(watcher, raw)
            except Exception as e:
                log.error(
                    f"Failed to process item {raw.item_id} for watcher {watcher.id}: {e}",
                    extra={"item_id": raw.item_id},
                )
                metrics.item_failures_total.labels(watcher_id=watcher.id).inc()
                result.outcomes.append(ItemOutcome(item_id=raw.item_id, ok=False, error=str(e)))
                continue

            result.outcomes.append(ItemOutcome(item_id=raw.item_id, ok=True, kind=event.kind))
            metrics.item_events_total.labels(kind=event.kind.value).inc()
            if event.kind == EventKind.NEW_ITEM:
                result.new_items.append(event)
            elif event.kind == EventKind.PRICE_DROP:
                result.price_drops.append(event)

        result.items_observed = len(raw_items) - filtered_out
        metrics.items_observed_total.labels(watcher_id=watcher.id).inc(result.items_observed)
        if filtered_out:
            log.info(f"Filtered {filtered_out} of {len(raw_items)} items for watcher {watcher.id}")

        result.execution_ms = (time.perf_counter() - start) * 1000
        metrics.watcher_runs_total.labels(marketplace=marketplace, status="success").inc()
        metrics.watcher_run_duration_seconds.labels(marketplace=marketplace).observe(
            result.execution_ms / 1000
        )
        log.info(
            f"Watcher {watcher.id} complete: {result.items_observed} items, "
            f"{len(result.new_items)} new, {len(result.price_drops)} price drops, "
            f"{result.items_failed} failed ({result.execution_ms:.0f}ms)"
        )
        return result

    async def _collect(self, watcher: Watcher) -> list[RawItem]:
        marketplace = watcher.marketplace.value
        collector = self.registry.create(watcher.marketplace)

        async with collector:
            async def attempt() -> list[RawItem]:
                return await asyncio.wait_for(
                    collector.collect(watcher, self.credentials),
                    timeout=self.timeout,
                )

            return await retry_async(
                attempt,
                attempts=self.max_attempts,
                base_delay=self.backoff,
                retry_on=(CollectorNetworkError, asyncio.TimeoutError),
                description=f"collector for watcher {watcher.id}",
                sleep=self._sleep,
                on_retry=lambda n, e: metrics.collector_retries_total.labels(
                    marketplace=marketplace
                ).inc(),
            )

    async def _process_item(self, watcher: Watcher, raw: RawItem) -> ClassifiedEvent:
        stored = await self.store.get(watcher.id, raw.item_id)
        classification = classify(raw, stored, watcher.price_drop_threshold)
        now = utcnow()

        if classification.kind == EventKind.NEW_ITEM:
            item = Item(
                watcher_id=watcher.id,
                item_id=raw.item_id,
                title=raw.title,
                price=raw.price,
                location=raw.location,
                url=raw.url,
                image_url=raw.image_url,
                first_seen=now,
                last_seen=now,
            )
            await self.store.put(item)
            return ClassifiedEvent(EventKind.NEW_ITEM, item)

        # Unchanged prices still refresh last_seen and expiry
        new_price = raw.price if classification.price_changed else stored.price
        updated = await self.store.update_price(watcher.id, raw.item_id, new_price, now)
        if updated is None:
            raise PersistenceError(
                f"Item {raw.item_id} disappeared before its price could be updated",
                watcher_id=watcher.id,
                item_id=raw.item_id,
            )

        return ClassifiedEvent(classification.kind, updated, classification.percentage)


def _describe(error: Exception) -> str:
    if isinstance(error, asyncio.TimeoutError):
        return "Collector timed out"
    return str(error) or error.__class__.__name__
