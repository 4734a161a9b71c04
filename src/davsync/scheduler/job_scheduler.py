"""Periodic automatic merge."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config.schema import WebDavConfig
from ..core.sync_engine import SyncEngine
from ..errors import SyncError
from ..utils.logging import get_logger


AUTO_SYNC_JOB_ID = "davsync_auto_merge"


class SchedulerError(Exception):
    """Raised when scheduler operations fail."""
    pass


class AutoSyncScheduler:
    """Runs ``SyncEngine.merge`` on an interval while auto sync is on."""

    def __init__(self, engine: SyncEngine):
        self.engine = engine
        self.logger = get_logger(self.__class__.__name__)

        self.scheduler = AsyncIOScheduler(
            job_defaults={
                'coalesce': True,  # Combine multiple pending executions
                'max_instances': 1,  # Only one instance per job
                'misfire_grace_time': 60
            }
        )

        self.interval_seconds: Optional[int] = None
        self.stats: Dict[str, Any] = {
            "run_count": 0,
            "success_count": 0,
            "error_count": 0,
            "last_run": None,
            "last_result": None,
            "last_error": None
        }

    @property
    def running(self) -> bool:
        return self.scheduler.running

    @property
    def job_active(self) -> bool:
        return self.scheduler.get_job(AUTO_SYNC_JOB_ID) is not None

    def start(self) -> None:
        """Start the scheduler; must be called inside a running event loop."""
        if self.scheduler.running:
            self.logger.warning("Scheduler is already running")
            return

        try:
            self.scheduler.start()
        except Exception as e:
            raise SchedulerError(f"Failed to start scheduler: {e}") from e

        self.logger.info("Auto sync scheduler started")

    async def stop(self, wait: bool = False) -> None:
        """Shut the scheduler down; ``running`` is False once this returns."""
        if not self.scheduler.running:
            return
        self.scheduler.shutdown(wait=wait)
        # Newer APScheduler releases queue the shutdown on the event loop
        await asyncio.sleep(0)
        self.interval_seconds = None
        self.logger.info("Auto sync scheduler stopped")

    def apply(self, config: WebDavConfig) -> None:
        """Add, replace or remove the merge job to match ``config``."""
        if not config.auto_sync_active:
            if self.job_active:
                self.scheduler.remove_job(AUTO_SYNC_JOB_ID)
                self.logger.info("Auto sync disabled")
            self.interval_seconds = None
            return

        job = self.scheduler.add_job(
            func=self.run_once,
            trigger=IntervalTrigger(seconds=config.sync_interval),
            id=AUTO_SYNC_JOB_ID,
            name="Automatic WebDAV merge",
            replace_existing=True
        )
        self.interval_seconds = config.sync_interval

        self.logger.info(
            "Auto sync scheduled",
            interval_seconds=config.sync_interval,
            # Unset on jobs added before the scheduler starts
            next_run=getattr(job, 'next_run_time', None)
        )

    async def run_once(self) -> None:
        """Job body: one merge, outcome recorded in ``stats``."""
        self.stats["run_count"] += 1
        self.stats["last_run"] = datetime.now(timezone.utc)

        try:
            result = await self.engine.merge()
        except SyncError as e:
            # A failed run must not cancel the schedule
            self.stats["error_count"] += 1
            self.stats["last_error"] = e.to_dict()
            self.logger.warning("Automatic merge failed", error_kind=e.kind, error=e.message)
            return

        self.stats["success_count"] += 1
        self.stats["last_result"] = result.to_dict()
        self.stats["last_error"] = None
