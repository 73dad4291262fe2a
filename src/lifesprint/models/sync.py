"""Sync queue, dead-letter and status models."""
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OperationType(str, Enum):
    PROGRESS = "progress"
    USER = "user"
    SETTINGS = "settings"


class OperationAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


# ─── Queue ─────────────────────────────────────────────────────────────────────

class SyncOperation(SQLModel):
    """A pending mutation waiting to be applied to the remote store."""

    id: str
    type: OperationType
    action: OperationAction
    payload: Dict[str, Any] = Field(default_factory=dict)
    enqueued_at: datetime = Field(default_factory=utcnow)
    retry_count: int = 0


class QueuedOperation(SQLModel, table=True):
    """One row per queued operation. `seq` preserves FIFO order."""

    __tablename__ = "sync_queue"

    seq: Optional[int] = Field(default=None, primary_key=True)
    id: str = Field(unique=True, index=True)
    user_id: str = Field(index=True)
    type: str
    action: str
    payload_json: str = "{}"
    enqueued_at: datetime = Field(default_factory=utcnow)
    retry_count: int = 0

    @classmethod
    def from_operation(cls, user_id: str, op: SyncOperation) -> "QueuedOperation":
        return cls(
            id=op.id,
            user_id=user_id,
            type=op.type.value,
            action=op.action.value,
            payload_json=json.dumps(op.payload),
            enqueued_at=op.enqueued_at,
            retry_count=op.retry_count,
        )

    def to_operation(self) -> SyncOperation:
        return SyncOperation(
            id=self.id,
            type=OperationType(self.type),
            action=OperationAction(self.action),
            payload=json.loads(self.payload_json),
            enqueued_at=_as_utc(self.enqueued_at),
            retry_count=self.retry_count,
        )


class DeadLetterOperation(SQLModel, table=True):
    """An operation dropped after hitting the retry ceiling. Kept for manual requeue."""

    __tablename__ = "sync_dead_letter"

    seq: Optional[int] = Field(default=None, primary_key=True)
    id: str = Field(index=True)
    user_id: str = Field(index=True)
    type: str
    action: str
    payload_json: str = "{}"
    enqueued_at: datetime
    retry_count: int = 0
    dropped_at: datetime = Field(default_factory=utcnow)
    reason: Optional[str] = None

    def to_dead_letter(self) -> "DeadLetter":
        return DeadLetter(
            id=self.id,
            type=OperationType(self.type),
            action=OperationAction(self.action),
            payload=json.loads(self.payload_json),
            enqueued_at=_as_utc(self.enqueued_at),
            retry_count=self.retry_count,
            dropped_at=_as_utc(self.dropped_at),
            reason=self.reason,
        )


class DeadLetter(SyncOperation):
    dropped_at: datetime
    reason: Optional[str] = None


# ─── Status ────────────────────────────────────────────────────────────────────

class SyncStatus(SQLModel):
    """Observable sync state for one user. last_sync_at is None until the first sync."""

    last_sync_at: Optional[datetime] = None
    in_progress: bool = False
    last_error: Optional[str] = None
    pending_count: int = 0


class SyncStatusRecord(SQLModel, table=True):
    __tablename__ = "sync_status"

    user_id: str = Field(primary_key=True)
    last_sync_at: Optional[datetime] = None
    in_progress: bool = False
    last_error: Optional[str] = None
    pending_count: int = 0
    updated_at: datetime = Field(default_factory=utcnow)

    def to_status(self) -> SyncStatus:
        return SyncStatus(
            last_sync_at=_as_utc(self.last_sync_at) if self.last_sync_at else None,
            in_progress=self.in_progress,
            last_error=self.last_error,
            pending_count=self.pending_count,
        )


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back out
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
