"""
SyncStatusTracker: the persisted, observable sync state of each user.

A thin store. It merges partial updates over the last saved status and writes
the result; it never talks to the network. Read by the API and the CLI,
written by the queue (pending_count) and the sync engine (everything else).
"""
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from lifesprint.errors import PersistenceError
from lifesprint.models.sync import SyncStatus, SyncStatusRecord, utcnow

logger = logging.getLogger(__name__)


class SyncStatusTracker:
    def __init__(self, engine):
        self.engine = engine

    def get(self, user_id: str) -> SyncStatus:
        """Last persisted status, or the zero-state if none was ever written."""
        try:
            with Session(self.engine) as s:
                row = s.get(SyncStatusRecord, user_id)
                return row.to_status() if row else SyncStatus()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not read sync status for {user_id}: {exc}") from exc

    def update(self, user_id: str, **changes: Any) -> SyncStatus:
        """Merge `changes` over the current status, persist and return it.

        Raises:
            TypeError: for keys that are not SyncStatus fields.
            PersistenceError: if the write fails.
        """
        unknown = set(changes) - set(SyncStatus.model_fields)
        if unknown:
            raise TypeError(f"Unknown sync status fields: {sorted(unknown)}")

        current = self.get(user_id)
        status = SyncStatus.model_validate({**current.model_dump(), **changes})
        self._write(user_id, status)
        return status

    def reset(self, user_id: str) -> SyncStatus:
        """Back to the zero-state (logout, account deletion)."""
        status = SyncStatus()
        self._write(user_id, status)
        logger.info("Sync status reset for user %s", user_id)
        return status

    def _write(self, user_id: str, status: SyncStatus) -> None:
        try:
            with Session(self.engine) as s:
                row = s.get(SyncStatusRecord, user_id) or SyncStatusRecord(user_id=user_id)
                row.last_sync_at = status.last_sync_at
                row.in_progress = status.in_progress
                row.last_error = status.last_error
                row.pending_count = status.pending_count
                row.updated_at = utcnow()
                s.add(row)
                s.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not save sync status for {user_id}: {exc}") from exc
