"""Tests for the automatic merge scheduler."""

import asyncio

import pytest

from davsync.config import WebDavConfig
from davsync.scheduler import AUTO_SYNC_JOB_ID, AutoSyncScheduler

from conftest import ENABLED_CONFIG, write_local


AUTO_CONFIG = ENABLED_CONFIG.model_copy(update={"auto_sync_enabled": True, "sync_interval": 120})


class TestAutoSyncScheduler:
    """Test job management and run bookkeeping."""

    @pytest.mark.asyncio
    async def test_apply_adds_interval_job(self, engine):
        scheduler = AutoSyncScheduler(engine)
        scheduler.start()
        try:
            scheduler.apply(AUTO_CONFIG)

            job = scheduler.scheduler.get_job(AUTO_SYNC_JOB_ID)
            assert job is not None
            assert job.trigger.interval.total_seconds() == 120
            assert scheduler.job_active is True
            assert scheduler.interval_seconds == 120
        finally:
            await scheduler.stop()

        assert scheduler.running is False

    @pytest.mark.asyncio
    async def test_restart_after_stop(self, engine):
        scheduler = AutoSyncScheduler(engine)
        scheduler.start()
        await scheduler.stop()

        scheduler.start()
        try:
            scheduler.apply(AUTO_CONFIG)
            await asyncio.sleep(0)

            assert scheduler.running is True
            assert scheduler.job_active is True
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start(self, engine):
        scheduler = AutoSyncScheduler(engine)

        await scheduler.stop()

        assert scheduler.running is False

    @pytest.mark.asyncio
    async def test_apply_replaces_existing_job(self, engine):
        scheduler = AutoSyncScheduler(engine)
        scheduler.start()
        try:
            scheduler.apply(AUTO_CONFIG)
            scheduler.apply(AUTO_CONFIG.model_copy(update={"sync_interval": 600}))

            jobs = scheduler.scheduler.get_jobs()
            assert len(jobs) == 1
            assert jobs[0].trigger.interval.total_seconds() == 600
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("config", [
        ENABLED_CONFIG,
        WebDavConfig(enabled=False, auto_sync_enabled=True),
    ])
    async def test_apply_removes_job_when_inactive(self, engine, config):
        scheduler = AutoSyncScheduler(engine)
        scheduler.start()
        try:
            scheduler.apply(AUTO_CONFIG)
            scheduler.apply(config)

            assert scheduler.job_active is False
            assert scheduler.interval_seconds is None
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_run_once_records_success(self, engine, remote, data_dir):
        write_local(data_dir, "servers", "a.json", mtime=1_700_000_000)
        await engine.configure(ENABLED_CONFIG)
        scheduler = AutoSyncScheduler(engine)

        await scheduler.run_once()

        assert scheduler.stats["run_count"] == 1
        assert scheduler.stats["success_count"] == 1
        assert scheduler.stats["last_result"]["servers_uploaded"] == 1
        assert scheduler.stats["last_run"] is not None

    @pytest.mark.asyncio
    async def test_run_once_records_failure_without_raising(self, engine):
        scheduler = AutoSyncScheduler(engine)

        await scheduler.run_once()

        assert scheduler.stats["error_count"] == 1
        assert scheduler.stats["last_error"]["error"] == "not_configured"
        assert scheduler.stats["success_count"] == 0
