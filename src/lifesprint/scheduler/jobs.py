"""
APScheduler jobs for background sync.

Each logged-in user gets one interval job, `periodic_sync:<user_id>`, that
probes the remote store and drains the user's queue. It backs up the other
triggers (connectivity restored, enqueue while online, "sync now") in case a
connectivity change was missed.

The scheduler runs inside the same event loop as the sync engine. Jobs are
added on login and removed on logout by SyncSession.
"""
import logging
from typing import List, Optional

from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from lifesprint.config import get_settings

logger = logging.getLogger(__name__)


def job_id(user_id: str) -> str:
    return f"periodic_sync:{user_id}"


class SyncScheduler:
    """Per-user periodic drain jobs on one AsyncIOScheduler."""

    def __init__(self, sync_engine, scheduler: Optional[AsyncIOScheduler] = None):
        """
        Args:
            sync_engine: SyncEngine whose drain() the jobs call.
            scheduler: Scheduler to use; a new AsyncIOScheduler if omitted.
        """
        self.sync_engine = sync_engine
        self.scheduler = scheduler or AsyncIOScheduler()

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self, user_id: str) -> Job:
        """Register the user's interval job and start the scheduler if needed.

        Starting the scheduler requires a running event loop.
        """
        settings = get_settings()
        job = self.scheduler.add_job(
            _periodic_sync,
            trigger="interval",
            minutes=settings.sync_interval_minutes,
            id=job_id(user_id),
            replace_existing=True,
            kwargs={"sync_engine": self.sync_engine, "user_id": user_id},
        )
        if not self.scheduler.running:
            self.scheduler.start()
        logger.info(
            "Periodic sync for user %s every %d minute(s)",
            user_id,
            settings.sync_interval_minutes,
        )
        return job

    def stop(self, user_id: str) -> None:
        """Remove the user's job. No-op if it is not scheduled."""
        if self.scheduler.get_job(job_id(user_id)) is not None:
            self.scheduler.remove_job(job_id(user_id))
            logger.info("Periodic sync stopped for user %s", user_id)

    def jobs(self) -> List[Job]:
        return self.scheduler.get_jobs()

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)


def build_scheduler(sync_engine) -> SyncScheduler:
    """
    Create the sync scheduler.

    Args:
        sync_engine: SyncEngine to drive.

    Returns:
        SyncScheduler with no jobs and not yet started.
    """
    return SyncScheduler(sync_engine)


async def _periodic_sync(sync_engine, user_id: str) -> None:
    """
    Interval job: refresh connectivity, then drain the user's queue.

    Skipped drains (offline, or already draining) are normal here.
    """
    try:
        online = await sync_engine.refresh_connectivity()
        if not online:
            logger.debug("Periodic sync for user %s: remote store unreachable", user_id)
            return
        result = await sync_engine.drain(user_id)
        if result.error:
            logger.warning("Periodic sync for user %s: %s", user_id, result.error)
    except Exception as exc:
        logger.error("Periodic sync for user %s failed: %s", user_id, exc)
