"""
Local copy of each user's records (progress, profile, settings).

Written after every successful remote write and whenever a direct write has
to fall back to the queue, so the client can always render the latest edit.
"""
import json
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from lifesprint.errors import PersistenceError
from lifesprint.models.local import LocalRecord
from lifesprint.models.sync import utcnow

logger = logging.getLogger(__name__)


class LocalCache:
    """JSON documents keyed by (user_id, kind)."""

    def __init__(self, engine):
        self.engine = engine

    def load(self, user_id: str, kind: str) -> Optional[Dict[str, Any]]:
        try:
            with Session(self.engine) as s:
                row = self._find(s, user_id, kind)
                return json.loads(row.data_json) if row else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not read local {kind} for {user_id}: {exc}") from exc

    def save(self, user_id: str, kind: str, data: Dict[str, Any]) -> None:
        try:
            with Session(self.engine) as s:
                row = self._find(s, user_id, kind)
                if row is None:
                    row = LocalRecord(user_id=user_id, kind=kind, data_json="{}")
                row.data_json = json.dumps(data)
                row.updated_at = utcnow()
                s.add(row)
                s.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not save local {kind} for {user_id}: {exc}") from exc
        logger.debug("Cached %s for user %s", kind, user_id)

    def delete(self, user_id: str, kind: str) -> None:
        try:
            with Session(self.engine) as s:
                row = self._find(s, user_id, kind)
                if row is not None:
                    s.delete(row)
                    s.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not delete local {kind} for {user_id}: {exc}") from exc

    def clear(self, user_id: str) -> None:
        """Drop every cached record for a user (account deletion)."""
        try:
            with Session(self.engine) as s:
                for row in s.exec(select(LocalRecord).where(LocalRecord.user_id == user_id)).all():
                    s.delete(row)
                s.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not clear local records for {user_id}: {exc}") from exc

    @staticmethod
    def _find(s: Session, user_id: str, kind: str) -> Optional[LocalRecord]:
        return s.exec(
            select(LocalRecord).where(
                LocalRecord.user_id == user_id, LocalRecord.kind == kind
            )
        ).first()
