"""Local cache of the last known good copy of each user record."""
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from lifesprint.models.sync import utcnow


class LocalRecord(SQLModel, table=True):
    """One JSON document per (user, kind): "progress", "user" or "settings"."""

    __tablename__ = "local_record"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    kind: str = Field(index=True)
    data_json: str
    updated_at: datetime = Field(default_factory=utcnow)
