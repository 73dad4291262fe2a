"""
DurableQueue: pending mutations per user, persisted across restarts.

Flow for a mutation:
  1. enqueue() assigns a fresh id, zero retry count and the current time
  2. The row is committed to SQLite before enqueue() returns
  3. The sync engine reads list(), applies operations in FIFO order, and
     writes the survivors back in one step with replace()

Every mutating call also sets SyncStatus.pending_count to the new queue
length. If the database write fails a PersistenceError is raised and the
in-memory copy of the queue is left exactly as it was.

Operations that exhaust the retry ceiling are moved to a dead-letter table
(in the same transaction as the replace) and only come back through an
explicit requeue_dead_letters() call.
"""
import json
import logging
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from lifesprint.errors import PersistenceError
from lifesprint.models.sync import (
    DeadLetter,
    DeadLetterOperation,
    OperationAction,
    OperationType,
    QueuedOperation,
    SyncOperation,
    utcnow,
)
from lifesprint.sync.status import SyncStatusTracker

logger = logging.getLogger(__name__)


class DurableQueue:
    """FIFO operation queue keyed by user id."""

    def __init__(self, engine, tracker: SyncStatusTracker):
        """
        Args:
            engine: SQLAlchemy engine holding the sync tables.
            tracker: Status tracker whose pending_count mirrors the queue length.
        """
        self.engine = engine
        self.tracker = tracker
        self._cache: Dict[str, List[SyncOperation]] = {}

    # ── Queue ─────────────────────────────────────────────────────────────────

    def enqueue(
        self,
        user_id: str,
        type: OperationType,
        action: OperationAction,
        payload: Optional[Dict[str, Any]] = None,
    ) -> SyncOperation:
        """Append a new operation and persist it before returning."""
        op = SyncOperation(
            id=uuid.uuid4().hex,
            type=OperationType(type),
            action=OperationAction(action),
            payload=payload or {},
            enqueued_at=utcnow(),
            retry_count=0,
        )
        ops = self._ops(user_id) + [op]

        with self._writing(f"enqueue {op.type.value}/{op.action.value} for {user_id}") as s:
            s.add(QueuedOperation.from_operation(user_id, op))

        self._committed(user_id, ops)
        logger.debug("Queued %s %s/%s for user %s", op.id, op.type.value, op.action.value, user_id)
        return op

    def list(self, user_id: str) -> List[SyncOperation]:
        """Queued operations in insertion order. Returns copies."""
        return [op.model_copy(deep=True) for op in self._ops(user_id)]

    def remove(self, user_id: str, ids: Iterable[str]) -> None:
        """Delete the given operations."""
        ids = set(ids)
        if not ids:
            return
        ops = [op for op in self._ops(user_id) if op.id not in ids]

        with self._writing(f"remove {len(ids)} operations for {user_id}") as s:
            for row in _queued_rows(s, user_id):
                if row.id in ids:
                    s.delete(row)

        self._committed(user_id, ops)

    def replace(
        self,
        user_id: str,
        ops: Iterable[SyncOperation],
        *,
        dead_letters: Iterable[SyncOperation] = (),
        reason: Optional[str] = None,
    ) -> None:
        """Overwrite the whole queue in one transaction.

        Args:
            user_id: Queue owner.
            ops: The new queue contents, in order.
            dead_letters: Operations to move to the dead-letter table in the
                same transaction.
            reason: Stored alongside each dead letter.

        Raises:
            ValueError: if `ops` contains the same id twice.
            PersistenceError: if the write fails (queue unchanged).
        """
        ops = [op.model_copy(deep=True) for op in ops]
        _check_unique(ops)
        dead_letters = list(dead_letters)

        with self._writing(f"replace queue for {user_id}") as s:
            for row in _queued_rows(s, user_id):
                s.delete(row)
            # Flush the deletes first so re-inserted ids don't trip the unique index
            s.flush()
            for op in ops:
                s.add(QueuedOperation.from_operation(user_id, op))
            for op in dead_letters:
                s.add(_dead_letter_row(user_id, op, reason))

        self._committed(user_id, ops)
        if dead_letters:
            logger.warning(
                "Moved %d operation(s) for user %s to dead letters: %s",
                len(dead_letters),
                user_id,
                reason,
            )

    def clear(self, user_id: str) -> None:
        """Drop the queue and all dead letters of a user (account deletion)."""
        with self._writing(f"clear queue for {user_id}") as s:
            for row in _queued_rows(s, user_id):
                s.delete(row)
            for dead in _dead_letter_rows(s, user_id):
                s.delete(dead)

        self._committed(user_id, [])

    # ── Dead letters ──────────────────────────────────────────────────────────

    def list_dead_letters(self, user_id: str) -> List[DeadLetter]:
        try:
            with Session(self.engine) as s:
                rows = _dead_letter_rows(s, user_id)
                return [row.to_dead_letter() for row in rows]
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not read dead letters for {user_id}: {exc}") from exc

    def requeue_dead_letters(
        self, user_id: str, ids: Optional[Iterable[str]] = None
    ) -> List[SyncOperation]:
        """Put dead letters back at the end of the queue with a fresh id and zero retries.

        Args:
            user_id: Queue owner.
            ids: Dead-letter ids to requeue; all of them if None.

        Returns:
            The newly queued operations.
        """
        wanted: Optional[Set[str]] = set(ids) if ids is not None else None
        requeued: List[SyncOperation] = []
        current = self._ops(user_id)

        with self._writing(f"requeue dead letters for {user_id}") as s:
            rows = _dead_letter_rows(s, user_id)
            for row in rows:
                if wanted is not None and row.id not in wanted:
                    continue
                op = SyncOperation(
                    id=uuid.uuid4().hex,
                    type=OperationType(row.type),
                    action=OperationAction(row.action),
                    payload=json.loads(row.payload_json),
                    enqueued_at=utcnow(),
                    retry_count=0,
                )
                s.add(QueuedOperation.from_operation(user_id, op))
                s.delete(row)
                requeued.append(op)

        if requeued:
            self._committed(user_id, current + requeued)
            logger.info("Requeued %d dead letter(s) for user %s", len(requeued), user_id)
        return requeued

    # ── Internal helpers ──────────────────────────────────────────────────────

    def _ops(self, user_id: str) -> List[SyncOperation]:
        if user_id not in self._cache:
            self._cache[user_id] = self._load(user_id)
        return self._cache[user_id]

    def _load(self, user_id: str) -> List[SyncOperation]:
        try:
            with Session(self.engine) as s:
                rows = _queued_rows(s, user_id)
                return [row.to_operation() for row in rows]
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not load sync queue for {user_id}: {exc}") from exc

    def _committed(self, user_id: str, ops: List[SyncOperation]) -> None:
        self._cache[user_id] = ops
        self.tracker.update(user_id, pending_count=len(ops))

    @contextmanager
    def _writing(self, what: str) -> Iterator[Session]:
        try:
            with Session(self.engine) as s:
                yield s
                s.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not {what}: {exc}") from exc


def _queued_rows(s: Session, user_id: str) -> List[QueuedOperation]:
    return list(
        s.exec(
            select(QueuedOperation)
            .where(QueuedOperation.user_id == user_id)
            .order_by(QueuedOperation.seq)
        ).all()
    )


def _dead_letter_rows(s: Session, user_id: str) -> List[DeadLetterOperation]:
    return list(
        s.exec(
            select(DeadLetterOperation)
            .where(DeadLetterOperation.user_id == user_id)
            .order_by(DeadLetterOperation.seq)
        ).all()
    )


def _check_unique(ops: List[SyncOperation]) -> None:
    seen: Set[str] = set()
    for op in ops:
        if op.id in seen:
            raise ValueError(f"Duplicate operation id in queue: {op.id}")
        seen.add(op.id)


def _dead_letter_row(user_id: str, op: SyncOperation, reason: Optional[str]) -> DeadLetterOperation:
    return DeadLetterOperation(
        id=op.id,
        user_id=user_id,
        type=op.type.value,
        action=op.action.value,
        payload_json=json.dumps(op.payload),
        enqueued_at=op.enqueued_at,
        retry_count=op.retry_count,
        reason=reason,
    )
