"""
SyncSession: ties a user's sync lifecycle to login and logout.

    session = SyncSession(sync_engine, scheduler, user_id)
    await session.start()          # login
    ...
    await session.logout()         # or session.delete_account()
"""
import logging

from lifesprint.scheduler.jobs import SyncScheduler
from lifesprint.sync.engine import DrainResult, SyncEngine

logger = logging.getLogger(__name__)


class SyncSession:
    def __init__(self, sync_engine: SyncEngine, scheduler: SyncScheduler, user_id: str):
        self.sync_engine = sync_engine
        self.scheduler = scheduler
        self.user_id = user_id
        self.active = False

    async def __aenter__(self) -> "SyncSession":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def start(self) -> DrainResult:
        """Login: attach to connectivity changes, start the timer and drain once."""
        self.sync_engine.clear_stale_in_progress(self.user_id)
        self.sync_engine.attach(self.user_id)
        self.scheduler.start(self.user_id)
        self.active = True
        logger.info("Sync session started for user %s", self.user_id)
        return await self.sync_engine.drain(self.user_id)

    async def stop(self, reset_status: bool = False) -> None:
        """Stop every trigger for this user and wait for running drains."""
        self.scheduler.stop(self.user_id)
        self.sync_engine.detach(self.user_id)
        await self.sync_engine.wait_for_background()
        if reset_status:
            self.sync_engine.tracker.reset(self.user_id)
        self.active = False
        logger.info("Sync session stopped for user %s", self.user_id)

    async def logout(self) -> None:
        """Stop syncing and reset the status. Pending operations stay queued."""
        await self.stop(reset_status=True)

    async def delete_account(self) -> None:
        """Stop syncing and drop everything stored locally for the user."""
        await self.stop()
        self.sync_engine.queue.clear(self.user_id)
        self.sync_engine.cache.clear(self.user_id)
        self.sync_engine.tracker.reset(self.user_id)
        logger.info("Local sync data deleted for user %s", self.user_id)
