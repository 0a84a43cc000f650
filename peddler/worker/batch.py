"""Batch Scheduler: run watchers in bounded waves and dispatch their events."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Sequence

from peddler.config import settings
from peddler.errors import ConfigurationError
from peddler.notify.fanout import NotificationFanout
from peddler.watchers import Watcher, ensure_unique_ids
from peddler.worker.runner import RunResult, WatchRunner

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """Aggregate outcome of one batch run."""

    total_watchers: int = 0
    succeeded: int = 0
    failed: int = 0
    items_observed: int = 0
    new_items: int = 0
    price_drops: int = 0
    average_execution_ms: float = 0.0
    results: list[RunResult] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "RunSummary":
        return cls()

    @classmethod
    def from_results(cls, results: list[RunResult]) -> "RunSummary":
        if not results:
            return cls.empty()
        return cls(
            total_watchers=len(results),
            succeeded=sum(1 for r in results if r.success),
            failed=sum(1 for r in results if not r.success),
            items_observed=sum(r.items_observed for r in results),
            new_items=sum(len(r.new_items) for r in results),
            price_drops=sum(len(r.price_drops) for r in results),
            average_execution_ms=sum(r.execution_ms for r in results) / len(results),
            results=list(results),
        )


def waves(watchers: Sequence[Watcher], size: int) -> list[list[Watcher]]:
    """Split watchers into consecutive groups of at most ``size``, order preserved."""
    return [list(watchers[i:i + size]) for i in range(0, len(watchers), size)]


class BatchScheduler:
    """
    Runs many watchers with bounded concurrency.

    Watchers run in waves of ``concurrency_limit``. A wave fully settles
    before the next one starts, and waves are separated by a cooldown.
    """

    def __init__(
        self,
        runner: WatchRunner,
        fanout: Optional[NotificationFanout] = None,
        cooldown_seconds: Optional[float] = None,
        sleep=asyncio.sleep,
        clock=time.perf_counter,
    ):
        self.runner = runner
        self.fanout = fanout
        self.cooldown_seconds = (
            cooldown_seconds if cooldown_seconds is not None else settings.wave_cooldown_seconds
        )
        self._sleep = sleep
        self._clock = clock

    async def run_all(self, watchers: Sequence[Watcher], concurrency_limit: int) -> RunSummary:
        """
        Run every enabled watcher.

        Args:
            watchers: Watchers to run, in order
            concurrency_limit: Maximum watchers in flight at once

        Returns:
            RunSummary over the watchers that were executed

        Raises:
            ConfigurationError: Invalid concurrency limit or duplicate watcher ids
        """
        if concurrency_limit < 1:
            raise ConfigurationError(f"concurrency_limit must be at least 1, got {concurrency_limit}")
        try:
            ensure_unique_ids(list(watchers))
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        enabled = [w for w in watchers if w.enabled]
        if not enabled:
            logger.info("No enabled watchers to run")
            return RunSummary.empty()

        batches = waves(enabled, concurrency_limit)
        logger.info(
            "Running %d watchers in %d waves (limit %d)",
            len(enabled),
            len(batches),
            concurrency_limit,
        )

        results: list[RunResult] = []
        for index, wave in enumerate(batches):
            results.extend(await self._run_wave(wave))

            if index < len(batches) - 1 and self.cooldown_seconds > 0:
                logger.debug("Wave %d done, cooling down %.1fs", index + 1, self.cooldown_seconds)
                await self._sleep(self.cooldown_seconds)

        return RunSummary.from_results(results)

    async def _run_wave(self, wave: list[Watcher]) -> list[RunResult]:
        settled = await asyncio.gather(
            *(self._run_one(watcher) for watcher in wave),
            return_exceptions=True,
        )

        results = []
        for watcher, outcome in zip(wave, settled):
            if isinstance(outcome, BaseException):
                logger.error(f"Watcher {watcher.id} raised unexpectedly: {outcome}")
                outcome = RunResult.failed(watcher.id, str(outcome) or outcome.__class__.__name__)
            results.append(outcome)
        return results

    async def _run_one(self, watcher: Watcher) -> RunResult:
        start = self._clock()
        try:
            result = await self.runner.run(watcher)
        except Exception as e:
            elapsed = (self._clock() - start) * 1000
            logger.error(f"Watcher {watcher.id} raised unexpectedly: {e}")
            return RunResult.failed(watcher.id, str(e) or e.__class__.__name__, execution_ms=elapsed)

        if self.fanout is not None:
            for event in result.events:
                await self.fanout.dispatch(event, watcher)
        return result
