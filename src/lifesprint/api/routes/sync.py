"""Sync trigger, status, queue and dead-letter routes."""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel

from lifesprint.api.deps import get_sync_engine
from lifesprint.models.sync import DeadLetter, SyncOperation
from lifesprint.sync.engine import SyncEngine

router = APIRouter()


class SyncStatusResponse(BaseModel):
    last_sync_at: Optional[datetime]
    in_progress: bool
    last_error: Optional[str]
    pending_count: int
    state: str
    failures: int


class RequeueRequest(BaseModel):
    ids: Optional[List[str]] = None  # If None, requeues every dead letter


@router.post("/{user_id}/trigger")
async def trigger_sync(
    user_id: str,
    background_tasks: BackgroundTasks,
    sync_engine: SyncEngine = Depends(get_sync_engine),
):
    """
    "Sync now". Returns immediately; the drain runs in the background and
    is skipped if one is already running or the device is offline.
    """
    background_tasks.add_task(sync_engine.drain, user_id)
    return {"message": "Sync started", "user_id": user_id}


@router.get("/{user_id}/status", response_model=SyncStatusResponse)
def sync_status(user_id: str, sync_engine: SyncEngine = Depends(get_sync_engine)):
    status = sync_engine.tracker.get(user_id)
    state = sync_engine.state(user_id)
    return SyncStatusResponse(
        last_sync_at=status.last_sync_at,
        in_progress=status.in_progress,
        last_error=status.last_error,
        pending_count=status.pending_count,
        state=state.phase,
        failures=state.failures,
    )


@router.get("/{user_id}/queue", response_model=List[SyncOperation])
def pending_operations(user_id: str, sync_engine: SyncEngine = Depends(get_sync_engine)):
    """Queued operations, oldest first."""
    return sync_engine.queue.list(user_id)


@router.get("/{user_id}/dead-letters", response_model=List[DeadLetter])
def dead_letters(user_id: str, sync_engine: SyncEngine = Depends(get_sync_engine)):
    return sync_engine.queue.list_dead_letters(user_id)


@router.post("/{user_id}/dead-letters/requeue", response_model=List[SyncOperation])
def requeue_dead_letters(
    user_id: str,
    request: RequeueRequest,
    sync_engine: SyncEngine = Depends(get_sync_engine),
):
    """Move dead letters back onto the queue; they are retried on the next drain."""
    return sync_engine.queue.requeue_dead_letters(user_id, request.ids)
