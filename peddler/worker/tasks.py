"""Background tasks for scheduled and on-demand watcher runs."""

import asyncio
import logging
import time
from typing import Any, Mapping, Optional

import httpx

from peddler import metrics
from peddler.config import settings
from peddler.errors import ConfigurationError
from peddler.ingest.base import CollectorRegistry, default_registry
from peddler.notify.base import SenderFactory
from peddler.notify.fanout import NotificationFanout
from peddler.settings_provider import FileSettingsProvider, SettingsProvider
from peddler.store.base import ItemStore
from peddler.store.sql import SqlItemStore
from peddler.watchers import Watcher
from peddler.worker.batch import BatchScheduler, RunSummary
from peddler.worker.runner import RunResult, WatchRunner

logger = logging.getLogger(__name__)


class TaskRunner:
    """
    Runner for background tasks.

    Wires the settings provider, item store, collectors and notification
    channels into a BatchScheduler for each run. Batches are serialized so a
    manual run never overlaps the scheduled one.
    """

    def __init__(
        self,
        provider: Optional[SettingsProvider] = None,
        store: Optional[ItemStore] = None,
        registry: Optional[CollectorRegistry] = None,
        senders: Optional[Mapping[str, SenderFactory]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.provider = provider
        self.store = store
        self.registry = registry
        self.senders = senders
        self.http_client = http_client
        self._owns_store = store is None
        self._owns_client = http_client is None
        self._batch_lock = asyncio.Lock()

    async def initialize(self):
        """Initialize task runner."""
        if self.provider is None:
            self.provider = FileSettingsProvider()
        if self.store is None:
            self.store = await SqlItemStore.from_url(settings.database_url)
        if self.registry is None:
            self.registry = default_registry()
        if self.http_client is None:
            self.http_client = httpx.AsyncClient(timeout=settings.notification_timeout_seconds)
        logger.info("Task runner initialized")

    async def close(self):
        """Clean up resources."""
        if self.http_client and self._owns_client:
            await self.http_client.aclose()
            self.http_client = None
        if self.store and self._owns_store:
            await self.store.close()
            self.store = None

    async def _ensure_ready(self):
        if None in (self.provider, self.store, self.registry, self.http_client):
            await self.initialize()

    async def _scheduler(self) -> BatchScheduler:
        await self._ensure_ready()
        credentials = await self.provider.get_credentials()
        runner = WatchRunner(self.store, credentials=credentials, registry=self.registry)
        fanout = NotificationFanout(
            credentials=credentials,
            senders=self.senders,
            client=self.http_client,
        )
        return BatchScheduler(runner, fanout)

    async def run_enabled_watchers(self, trigger: str = "scheduled") -> RunSummary:
        """
        Run every enabled watcher (scheduled trigger).

        This method is called by APScheduler; configuration errors are logged
        and re-raised so the job shows as failed.
        """
        async with self._batch_lock:
            try:
                scheduler = await self._scheduler()
                watchers = await self.provider.get_enabled_watchers()
                summary = await scheduler.run_all(watchers, settings.max_concurrent_watchers)
            except ConfigurationError as e:
                logger.error(f"Batch run aborted by configuration error: {e}")
                raise

        metrics.batch_runs_total.labels(trigger=trigger).inc()
        metrics.batch_last_run_timestamp.set(time.time())
        log_summary(summary)
        return summary

    async def run_watcher(self, watcher_id: str) -> Optional[RunResult]:
        """
        Run one watcher on demand.

        Args:
            watcher_id: Watcher id from the configuration

        Returns:
            The watcher's RunResult, or None if no such watcher exists
        """
        async with self._batch_lock:
            await self._ensure_ready()
            watcher = await self.provider.get_watcher(watcher_id)
            if watcher is None:
                logger.warning(f"Watcher {watcher_id} not found")
                return None

            scheduler = await self._scheduler()
            summary = await scheduler.run_all([watcher], 1)

        metrics.batch_runs_total.labels(trigger="manual").inc()
        log_summary(summary)
        if summary.results:
            return summary.results[0]
        # Disabled watchers are not executed
        return RunResult(watcher_id=watcher.id, success=True, disabled=True)

    async def list_watchers(self) -> list[Watcher]:
        """Every configured watcher, enabled or not."""
        await self._ensure_ready()
        config = await self.provider.get_config()
        return config.watchers

    async def purge_expired_items(self) -> int:
        """Delete item records past their retention window."""
        await self._ensure_ready()
        removed = await self.store.purge_expired()
        logger.info(f"Expired item purge removed {removed} items")
        return removed

    async def watcher_stats(self, watcher_id: str, limit: int = 50) -> Optional[dict[str, Any]]:
        """
        Recent items for a watcher.

        Returns:
            Stats dict, or None if no such watcher exists
        """
        await self._ensure_ready()
        watcher = await self.provider.get_watcher(watcher_id)
        if watcher is None:
            return None

        items = await self.store.list_for_watcher(watcher_id, limit=limit)
        return {
            "watcher_id": watcher.id,
            "name": watcher.display_name,
            "enabled": watcher.enabled,
            "item_count": len(items),
            "price_drops": sum(1 for i in items if i.previous_price is not None and i.price < i.previous_price),
            "items": items,
        }


def log_summary(summary: RunSummary) -> None:
    """Log a batch summary and one line per watcher."""
    logger.info(
        "Batch complete: %d watchers, %d succeeded, %d failed, %d items, "
        "%d new, %d price drops, avg %.0fms",
        summary.total_watchers,
        summary.succeeded,
        summary.failed,
        summary.items_observed,
        summary.new_items,
        summary.price_drops,
        summary.average_execution_ms,
    )
    for result in summary.results:
        if result.success:
            logger.info(
                "  %s: %d items, %d new, %d drops, %d failed items (%.0fms)",
                result.watcher_id,
                result.items_observed,
                len(result.new_items),
                len(result.price_drops),
                result.items_failed,
                result.execution_ms,
            )
        else:
            logger.warning("  %s: FAILED - %s", result.watcher_id, result.error)


# Global task runner
task_runner = TaskRunner()
