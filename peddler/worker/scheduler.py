"""APScheduler job definitions."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from peddler.config import settings
from peddler.worker.tasks import task_runner

logger = logging.getLogger(__name__)


def setup_scheduler() -> AsyncIOScheduler:
    """
    Setup and configure APScheduler.

    Scheduling overview:
    - Enabled watchers run every settings.schedule_interval_minutes
    - Expired items are purged every settings.purge_interval_hours

    Returns:
        Configured scheduler instance
    """
    scheduler = AsyncIOScheduler()
    run_interval = max(1, int(settings.schedule_interval_minutes))
    purge_interval = max(1, int(settings.purge_interval_hours))

    scheduler.add_job(
        task_runner.run_enabled_watchers,
        IntervalTrigger(minutes=run_interval),
        id="watcher_run",
        name="Run enabled watchers",
        max_instances=1,  # Prevent overlapping runs
        coalesce=True,
        misfire_grace_time=600,
        replace_existing=True,
    )

    scheduler.add_job(
        task_runner.purge_expired_items,
        IntervalTrigger(hours=purge_interval),
        id="item_purge",
        name="Purge expired items",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    logger.info(
        "Scheduler configured: watchers every %d minutes, item purge every %d hours",
        run_interval,
        purge_interval,
    )

    return scheduler
