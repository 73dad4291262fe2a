"""Tests for the periodic sync scheduler and its job body."""
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from lifesprint.scheduler.jobs import SyncScheduler, _periodic_sync, build_scheduler, job_id
from lifesprint.sync.engine import DrainResult


class TestBuildScheduler:
    def test_returns_sync_scheduler(self):
        scheduler = build_scheduler(MagicMock())
        assert isinstance(scheduler, SyncScheduler)
        assert isinstance(scheduler.scheduler, AsyncIOScheduler)

    def test_not_running_on_creation(self):
        """build_scheduler should not auto-start."""
        scheduler = build_scheduler(MagicMock())
        assert not scheduler.running
        assert scheduler.jobs() == []


class TestSyncScheduler:
    @pytest.mark.asyncio
    async def test_start_registers_interval_job(self):
        scheduler = build_scheduler(MagicMock())
        try:
            scheduler.start("u1")
            job = scheduler.scheduler.get_job("periodic_sync:u1")
            assert job is not None
            assert job.trigger.__class__.__name__ == "IntervalTrigger"
            assert job.trigger.interval == timedelta(minutes=5)
            assert job.kwargs["user_id"] == "u1"
            assert scheduler.running
        finally:
            scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_interval_from_settings(self):
        scheduler = build_scheduler(MagicMock())
        try:
            with patch("lifesprint.scheduler.jobs.get_settings") as mock_settings:
                mock_settings.return_value.sync_interval_minutes = 15
                scheduler.start("u1")
            job = scheduler.scheduler.get_job(job_id("u1"))
            assert job.trigger.interval == timedelta(minutes=15)
        finally:
            scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_job(self):
        scheduler = build_scheduler(MagicMock())
        try:
            scheduler.start("u1")
            scheduler.start("u1")
            scheduler.start("u2")
            assert sorted(j.id for j in scheduler.jobs()) == ["periodic_sync:u1", "periodic_sync:u2"]
        finally:
            scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_stop_removes_only_that_user(self):
        scheduler = build_scheduler(MagicMock())
        try:
            scheduler.start("u1")
            scheduler.start("u2")
            scheduler.stop("u1")
            scheduler.stop("u1")
            assert [j.id for j in scheduler.jobs()] == ["periodic_sync:u2"]
        finally:
            scheduler.shutdown()

    def test_shutdown_when_not_running(self):
        scheduler = build_scheduler(MagicMock())
        scheduler.shutdown()
        assert not scheduler.running


# ─── _periodic_sync job body ───────────────────────────────────────────────────

class TestPeriodicSyncJob:
    @pytest.mark.asyncio
    async def test_probes_then_drains(self):
        sync_engine = MagicMock()
        sync_engine.refresh_connectivity = AsyncMock(return_value=True)
        sync_engine.drain = AsyncMock(return_value=DrainResult(success=True))

        await _periodic_sync(sync_engine=sync_engine, user_id="u1")

        sync_engine.refresh_connectivity.assert_awaited_once()
        sync_engine.drain.assert_awaited_once_with("u1")

    @pytest.mark.asyncio
    async def test_skips_drain_when_unreachable(self):
        sync_engine = MagicMock()
        sync_engine.refresh_connectivity = AsyncMock(return_value=False)
        sync_engine.drain = AsyncMock()

        await _periodic_sync(sync_engine=sync_engine, user_id="u1")

        sync_engine.drain.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_exception_does_not_propagate(self):
        """The job catches all exceptions so the scheduler stays alive."""
        sync_engine = MagicMock()
        sync_engine.refresh_connectivity = AsyncMock(return_value=True)
        sync_engine.drain = AsyncMock(side_effect=Exception("disk full"))

        # Should not raise
        await _periodic_sync(sync_engine=sync_engine, user_id="u1")
