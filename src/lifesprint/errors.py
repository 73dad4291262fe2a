"""
Error taxonomy for the sync subsystem.

Only PersistenceError is allowed to escape a background drain: it means the
local durability guarantee itself cannot be met. Remote errors are recorded
in SyncStatus and retried on the next trigger.
"""
from typing import Iterable, List, Optional


class SyncError(Exception):
    """Base class for all sync subsystem errors."""


# ── Remote store ──────────────────────────────────────────────────────────────

class RemoteStoreError(SyncError):
    """A remote read/write did not succeed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientNetworkError(RemoteStoreError):
    """Connection failure, timeout, 5xx or rate limit. Safe to retry."""


class MalformedResponseError(RemoteStoreError):
    """The remote store answered with something we cannot use."""


# ── Operations ────────────────────────────────────────────────────────────────

class PermanentOperationFailure(SyncError):
    """Raised for operations that exhausted the retry ceiling."""

    def __init__(self, operation_ids: Iterable[str]):
        self.operation_ids: List[str] = list(operation_ids)
        count = len(self.operation_ids)
        super().__init__(
            f"Failed to sync {count} operation{'s' if count != 1 else ''}"
        )


# ── Local persistence ─────────────────────────────────────────────────────────

class PersistenceError(SyncError):
    """Local storage failed; the write did not happen."""
