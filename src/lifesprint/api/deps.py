"""FastAPI dependencies."""
from fastapi import Request

from lifesprint.sync.engine import SyncEngine


def get_sync_engine(request: Request) -> SyncEngine:
    """The SyncEngine the app was created with (see create_app)."""
    return request.app.state.sync_engine
