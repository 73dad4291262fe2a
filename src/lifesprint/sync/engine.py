"""
SyncEngine: replays queued operations against the remote store.

Flow for one drain of a user's queue:
  1. Skip if offline or if a drain for this user is already in progress
  2. Set status.in_progress (the per-user mutual exclusion flag)
  3. Apply each queued operation in FIFO order, one at a time:
       create/update → read remote, merge if it exists, write back
       delete        → delete remote
     Successful writes are mirrored into the local cache.
  4. Failed operations get retry_count += 1 and stay queued; at the retry
     ceiling they move to the dead-letter list and status.last_error is set
  5. Write the surviving queue back in one step and update the status

Interactive edits go through update_remote_record() instead: a direct write
with exponential backoff that falls back to the queue when the store stays
unreachable, so an edit is never lost and never blocks on the network.

Only PersistenceError escapes a drain. Remote failures are logged, counted
against the operation and retried on the next trigger.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from pydantic import ValidationError

from lifesprint.db.local_cache import LocalCache
from lifesprint.errors import PermanentOperationFailure, RemoteStoreError
from lifesprint.models.progress import ProgressRecord
from lifesprint.models.sync import OperationAction, OperationType, SyncOperation, utcnow
from lifesprint.remote.client import PROGRESS, SETTINGS, USER, RemoteStore
from lifesprint.sync.conflict import DroppedValue, merge_fields, merge_progress
from lifesprint.sync.connectivity import ConnectivityMonitor
from lifesprint.sync.queue import DurableQueue
from lifesprint.sync.status import SyncStatusTracker

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
DIRECT_WRITE_ATTEMPTS = 3
BACKOFF_BASE_SECONDS = 1.0
NO_CONNECTIVITY = "No connectivity"


# ─── Results ───────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class EngineState:
    """Per-user engine state: idle, draining, or backoff after `failures` failed attempts."""
    phase: str
    failures: int = 0


IDLE = EngineState("idle")
DRAINING = EngineState("draining")


@dataclass
class DrainResult:
    """Outcome of one drain() call."""
    success: bool
    skipped: bool = False
    applied: List[str] = field(default_factory=list)
    retrying: List[str] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class WriteResult:
    """Outcome of update_remote_record(). `operation` is set when the write was deferred."""
    synced: bool
    record: ProgressRecord
    operation: Optional[SyncOperation] = None
    error: Optional[str] = None


# ─── Engine ────────────────────────────────────────────────────────────────────

class SyncEngine:
    """Drains per-user operation queues against the remote store."""

    def __init__(
        self,
        queue: DurableQueue,
        tracker: SyncStatusTracker,
        remote: RemoteStore,
        cache: LocalCache,
        connectivity: ConnectivityMonitor,
        *,
        max_retries: int = MAX_RETRIES,
        write_attempts: int = DIRECT_WRITE_ATTEMPTS,
        backoff_base: float = BACKOFF_BASE_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            queue: Durable per-user operation queue.
            tracker: Sync status store (shared with the queue).
            remote: RemoteStore instance (or AsyncMock in tests).
            cache: Local copy of the user's records.
            connectivity: Online/offline signal; the engine subscribes to it.
            max_retries: Drain passes an operation may fail before it is dead-lettered.
            write_attempts: Tries for a direct progress write before deferring it.
            backoff_base: Seconds before the 2nd direct-write attempt; doubles after.
            sleep: Awaitable sleep, replaced in tests.
            clock: Current UTC time, replaced in tests.
        """
        self.queue = queue
        self.tracker = tracker
        self.remote = remote
        self.cache = cache
        self.connectivity = connectivity
        self.max_retries = max_retries
        self.write_attempts = write_attempts
        self.backoff_base = backoff_base
        self._sleep = sleep
        self._clock = clock

        self._attached: Set[str] = set()
        self._write_failures: Dict[str, int] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._appliers = {
            OperationType.PROGRESS: self._apply_progress,
            OperationType.USER: self._apply_user,
            OperationType.SETTINGS: self._apply_settings,
        }

        connectivity.subscribe(self._on_connectivity_change)

    # ── Users reacting to connectivity ────────────────────────────────────────

    def attach(self, user_id: str) -> None:
        """Drain this user's queue whenever connectivity comes back."""
        self._attached.add(user_id)

    def detach(self, user_id: str) -> None:
        self._attached.discard(user_id)

    def state(self, user_id: str) -> EngineState:
        if self.tracker.get(user_id).in_progress:
            return DRAINING
        failures = self._write_failures.get(user_id, 0)
        failures = max([failures] + [op.retry_count for op in self.queue.list(user_id)])
        return EngineState("backoff", failures) if failures else IDLE

    def clear_stale_in_progress(self, user_id: str) -> bool:
        """Clear an in-progress flag left behind by a process that died mid-drain.

        Only call this before this process starts draining the user; a flag
        set by a live drain in the same process must not be cleared.
        """
        if not self.tracker.get(user_id).in_progress:
            return False
        logger.warning("Clearing stale in-progress flag for user %s", user_id)
        self.tracker.update(user_id, in_progress=False)
        return True

    async def refresh_connectivity(self) -> bool:
        """Probe the remote store and update the connectivity signal."""
        return await self.connectivity.probe(self.remote.ping)

    # ── Drain ─────────────────────────────────────────────────────────────────

    async def drain(self, user_id: str) -> DrainResult:
        """Apply every queued operation of a user against the remote store.

        Returns immediately (skipped) when offline or when another drain for
        the same user is already running.

        Raises:
            PersistenceError: if the local queue or status cannot be written.
        """
        if not self.connectivity.is_online:
            logger.debug("Offline, skipping drain for user %s", user_id)
            return DrainResult(success=True, skipped=True)
        if self.tracker.get(user_id).in_progress:
            logger.debug("Drain already running for user %s, skipping", user_id)
            return DrainResult(success=True, skipped=True)

        self.tracker.update(user_id, in_progress=True)
        try:
            return await self._drain_pass(user_id)
        except BaseException:
            self.tracker.update(user_id, in_progress=False)
            raise

    async def _drain_pass(self, user_id: str) -> DrainResult:
        ops = self.queue.list(user_id)
        if not ops:
            self.tracker.update(
                user_id,
                last_sync_at=self._clock(),
                in_progress=False,
                last_error=None,
                pending_count=0,
            )
            return DrainResult(success=True)

        logger.info("Draining %d operation(s) for user %s", len(ops), user_id)
        applied: List[str] = []
        remaining: List[SyncOperation] = []
        dropped: List[SyncOperation] = []

        for op in ops:
            if await self._apply_operation(user_id, op):
                applied.append(op.id)
                continue
            op.retry_count += 1
            if op.retry_count >= self.max_retries:
                dropped.append(op)
            else:
                remaining.append(op)

        error = None
        if dropped:
            failure = PermanentOperationFailure(op.id for op in dropped)
            error = str(failure)
            logger.error("%s for user %s: %s", error, user_id, ", ".join(failure.operation_ids))

        # Operations enqueued while we were awaiting the remote store go after the survivors
        seen = {op.id for op in ops}
        remaining += [op for op in self.queue.list(user_id) if op.id not in seen]

        self.queue.replace(user_id, remaining, dead_letters=dropped, reason=error)
        self.tracker.update(
            user_id,
            last_sync_at=self._clock(),
            in_progress=False,
            last_error=error,
            pending_count=len(remaining),
        )
        logger.info(
            "Drain finished for user %s: %d applied, %d pending, %d dropped",
            user_id,
            len(applied),
            len(remaining),
            len(dropped),
        )
        return DrainResult(
            success=not dropped,
            applied=applied,
            retrying=[op.id for op in remaining if op.id in seen],
            dropped=[op.id for op in dropped],
            error=error,
        )

    async def _apply_operation(self, user_id: str, op: SyncOperation) -> bool:
        try:
            await self._appliers[op.type](user_id, op)
        except (RemoteStoreError, ValidationError) as exc:
            logger.warning(
                "Operation %s (%s/%s) for user %s failed on attempt %d: %s",
                op.id,
                op.type.value,
                op.action.value,
                user_id,
                op.retry_count + 1,
                exc,
            )
            return False
        return True

    # ── Per-type apply routines ───────────────────────────────────────────────

    async def _apply_progress(self, user_id: str, op: SyncOperation) -> None:
        if op.action == OperationAction.DELETE:
            await self.remote.delete_progress(user_id)
            self.cache.delete(user_id, PROGRESS)
            return

        local = ProgressRecord.from_payload(op.payload)
        remote = await self.remote.get_progress(user_id)
        if remote is None:
            merged = local
        else:
            dropped: List[DroppedValue] = []
            merged = merge_progress(remote, local, dropped)
            self._log_dropped(user_id, dropped)

        await self.remote.upsert_progress(user_id, merged)
        self.cache.save(user_id, PROGRESS, merged.to_payload())

    async def _apply_user(self, user_id: str, op: SyncOperation) -> None:
        await self._apply_document(
            user_id,
            op,
            USER,
            self.remote.get_user,
            self.remote.upsert_user,
            self.remote.delete_user,
        )

    async def _apply_settings(self, user_id: str, op: SyncOperation) -> None:
        await self._apply_document(
            user_id,
            op,
            SETTINGS,
            self.remote.get_settings,
            self.remote.upsert_settings,
            self.remote.delete_settings,
        )

    async def _apply_document(self, user_id, op, kind, get, upsert, delete) -> None:
        if op.action == OperationAction.DELETE:
            await delete(user_id)
            self.cache.delete(user_id, kind)
            return

        remote = await get(user_id)
        merged = merge_fields(remote, op.payload) if remote is not None else dict(op.payload)
        await upsert(user_id, merged)
        self.cache.save(user_id, kind, merged)

    @staticmethod
    def _log_dropped(user_id: str, dropped: List[DroppedValue]) -> None:
        for d in dropped:
            logger.warning(
                "Merge for user %s kept %r at %s, discarded %r",
                user_id,
                d.kept,
                d.path,
                d.discarded,
            )

    # ── Enqueue and direct writes ─────────────────────────────────────────────

    def enqueue_and_maybe_drain(
        self,
        user_id: str,
        type: OperationType,
        action: OperationAction,
        payload: Optional[Dict[str, Any]] = None,
    ) -> SyncOperation:
        """Queue an operation and, when online, start a drain in the background."""
        op = self.queue.enqueue(user_id, type, action, payload)
        if self.connectivity.is_online:
            self._schedule_drain(user_id)
        return op

    async def update_remote_record(self, user_id: str, record: ProgressRecord) -> WriteResult:
        """Write progress straight to the remote store, deferring to the queue on failure.

        Tries `write_attempts` times, sleeping backoff_base * 2^(attempt-1)
        seconds between attempts. When offline, or once attempts are
        exhausted, the record is saved locally and a progress/update
        operation is queued for the next drain.

        Raises:
            PersistenceError: if the local fallback itself cannot be written.
        """
        error: Optional[str] = NO_CONNECTIVITY
        if self.connectivity.is_online:
            error = await self._write_with_backoff(user_id, record)
            if error is None:
                self.cache.save(user_id, PROGRESS, record.to_payload())
                return WriteResult(synced=True, record=record)

        logger.warning("Deferring progress write for user %s: %s", user_id, error)
        self.cache.save(user_id, PROGRESS, record.to_payload())
        op = self.queue.enqueue(
            user_id, OperationType.PROGRESS, OperationAction.UPDATE, record.to_payload()
        )
        return WriteResult(synced=False, record=record, operation=op, error=error)

    async def _write_with_backoff(self, user_id: str, record: ProgressRecord) -> Optional[str]:
        """Returns None on success, otherwise the last error message."""
        try:
            for attempt in range(1, self.write_attempts + 1):
                try:
                    await self.remote.upsert_progress(user_id, record)
                    return None
                except RemoteStoreError as exc:
                    self._write_failures[user_id] = attempt
                    if attempt == self.write_attempts:
                        logger.error(
                            "All %d progress write attempts failed for user %s: %s",
                            self.write_attempts,
                            user_id,
                            exc,
                        )
                        return str(exc)
                    delay = self.backoff_base * 2 ** (attempt - 1)
                    logger.warning(
                        "Progress write attempt %d/%d for user %s failed: %s. Retrying in %.1fs...",
                        attempt,
                        self.write_attempts,
                        user_id,
                        exc,
                        delay,
                    )
                    await self._sleep(delay)
            return "no write attempts configured"
        finally:
            self._write_failures.pop(user_id, None)

    # ── Background work ───────────────────────────────────────────────────────

    def _on_connectivity_change(self, online: bool) -> None:
        for user_id in sorted(self._attached):
            if online:
                self._schedule_drain(user_id)
            else:
                self.tracker.update(user_id, last_error=NO_CONNECTIVITY)

    def _schedule_drain(self, user_id: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; drain for user %s left to the next trigger", user_id)
            return
        task = loop.create_task(self.drain(user_id))
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background drain failed: %s", exc, exc_info=exc)

    async def wait_for_background(self) -> None:
        """Wait for every background drain started so far (and any they start)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


def build_sync_engine(db_engine=None, settings=None, connectivity=None) -> SyncEngine:
    """Wire a SyncEngine from settings: SQLite queue/status/cache plus the HTTP remote store."""
    from lifesprint.config import get_settings
    from lifesprint.db.engine import get_engine

    settings = settings or get_settings()
    db_engine = db_engine or get_engine()
    tracker = SyncStatusTracker(db_engine)
    return SyncEngine(
        queue=DurableQueue(db_engine, tracker),
        tracker=tracker,
        remote=RemoteStore(
            settings.remote_base_url,
            token=settings.remote_api_token,
            timeout=settings.remote_timeout_seconds,
        ),
        cache=LocalCache(db_engine),
        connectivity=connectivity or ConnectivityMonitor(),
        max_retries=settings.max_retries,
        write_attempts=settings.direct_write_attempts,
        backoff_base=settings.backoff_base_seconds,
    )
