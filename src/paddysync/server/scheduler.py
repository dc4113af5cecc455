"""Scheduler for the periodic batch sync.

This module provides:
- Cron-triggered batch sync (default daily at 12:00)
- Optional run at startup
- Manual trigger for CLI/API usage

Overlapping runs are skipped: while one batch is in progress, further
ticks or manual triggers in the same process return without syncing.
Runs in separate processes are not coordinated.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

if TYPE_CHECKING:
    from paddysync.sync.engine import BatchSyncEngine, SyncSummary

logger = logging.getLogger(__name__)

DEFAULT_SCHEDULE = "0 12 * * *"


class SyncScheduler:
    """Cron scheduler driving BatchSyncEngine.sync_pending."""

    def __init__(
        self,
        engine: BatchSyncEngine,
        schedule: str = DEFAULT_SCHEDULE,
        timezone: str | None = None,
        run_on_start: bool = False,
        batch_size: int | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            engine: Batch sync engine to drive.
            schedule: Five-field crontab expression.
            timezone: IANA timezone for the schedule, local time if None.
            run_on_start: Also run one batch right after start.
            batch_size: Records per run, engine default if None.

        Raises:
            ValueError: If the crontab expression is invalid.
        """
        self._engine = engine
        self._schedule = schedule
        self._timezone = timezone
        self._run_on_start = run_on_start
        self._batch_size = batch_size
        self._trigger = CronTrigger.from_crontab(schedule, timezone=timezone)
        self._scheduler: AsyncIOScheduler | None = None
        self._is_running = False

    @property
    def is_running(self) -> bool:
        """Whether a batch is in progress."""
        return self._is_running

    @property
    def started(self) -> bool:
        return self._scheduler is not None

    async def _sync_job(self) -> None:
        """Job function for the scheduled batch sync."""
        logger.info("Starting scheduled batch sync")
        try:
            summary = await self.run_now()
        except Exception:
            logger.exception("Error during scheduled batch sync")
            return
        if summary is not None and summary.total == 0:
            logger.debug("Scheduled batch sync: nothing to do")

    def start(self) -> None:
        """Start the scheduler. Must be called from a running event loop."""
        if self._scheduler is not None:
            return  # Already running

        if self._timezone:
            self._scheduler = AsyncIOScheduler(timezone=self._timezone)
        else:
            self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self._sync_job,
            trigger=self._trigger,
            id="batch_sync",
            name="Batch sync",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        if self._run_on_start:
            # No trigger means a single run as soon as the scheduler starts
            self._scheduler.add_job(self._sync_job, id="batch_sync_startup", name="Startup sync")

        self._scheduler.start()
        logger.info(
            "Sync scheduler started (schedule: %s, timezone: %s)",
            self._schedule,
            self._timezone or "local",
        )

    def stop(self) -> None:
        """Stop the scheduler."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Sync scheduler stopped")

    async def run_now(self, batch_size: int | None = None) -> SyncSummary | None:
        """Run one batch immediately (manual trigger).

        Args:
            batch_size: Records to process, scheduler default if None.

        Returns:
            Summary of the run, or None if another run was in progress.
        """
        if self._is_running:
            logger.info("Batch sync already running, skipping")
            return None

        self._is_running = True
        try:
            summary = await self._engine.sync_pending(batch_size or self._batch_size)
        finally:
            self._is_running = False

        logger.info(
            "Batch sync completed: %d synced, %d failed",
            summary.succeeded,
            summary.failed,
        )
        return summary
