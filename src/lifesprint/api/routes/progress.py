"""Progress read/write routes backed by the local cache."""
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from lifesprint.analysis.completion import (
    entry_completion,
    progress_status_message,
    sprint_completion,
    week_completion,
)
from lifesprint.api.deps import get_sync_engine
from lifesprint.models.progress import DAYS_IN_WEEK, ProgressRecord
from lifesprint.remote.client import PROGRESS
from lifesprint.sync.engine import SyncEngine

router = APIRouter()


def _load_progress(user_id: str, sync_engine: SyncEngine) -> ProgressRecord:
    data = sync_engine.cache.load(user_id, PROGRESS)
    if data is None:
        raise HTTPException(status_code=404, detail="No progress recorded")
    return ProgressRecord.from_payload(data)


@router.get("/{user_id}")
def get_progress(user_id: str, sync_engine: SyncEngine = Depends(get_sync_engine)) -> Dict[str, Any]:
    """Latest local copy of the user's progress (camelCase, as stored remotely)."""
    return _load_progress(user_id, sync_engine).to_payload()


@router.put("/{user_id}")
async def put_progress(
    user_id: str,
    record: ProgressRecord,
    sync_engine: SyncEngine = Depends(get_sync_engine),
):
    """
    Save progress. Written straight to the remote store when reachable,
    otherwise kept locally and queued; the edit is never lost either way.
    """
    result = await sync_engine.update_remote_record(user_id, record)
    return {
        "synced": result.synced,
        "operation_id": result.operation.id if result.operation else None,
        "error": result.error,
    }


@router.get("/{user_id}/completion")
def get_completion(user_id: str, sync_engine: SyncEngine = Depends(get_sync_engine)):
    """Completion scores for the progress bars, up to the current week."""
    record = _load_progress(user_id, sync_engine)
    weeks = max(record.current_week, 1)
    sprint = sprint_completion(record, weeks)
    return {
        "days": {d: entry_completion(record, d) for d in range(1, weeks * DAYS_IN_WEEK + 1)},
        "weeks": {w: week_completion(record, w) for w in range(1, weeks + 1)},
        "sprint": sprint,
        "message": progress_status_message(sprint),
    }
