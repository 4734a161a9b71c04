"""Scheduling package for automatic sync."""

from .job_scheduler import AutoSyncScheduler, SchedulerError, AUTO_SYNC_JOB_ID

__all__ = ["AutoSyncScheduler", "SchedulerError", "AUTO_SYNC_JOB_ID"]
