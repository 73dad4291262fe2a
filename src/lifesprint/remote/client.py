"""
Async client for the remote record store.

The store is a plain REST document store, one document per user and kind:

    GET    {base}/users/{user_id}/{kind}   → 200 JSON document | 404
    PUT    {base}/users/{user_id}/{kind}   → 200/201/204
    DELETE {base}/users/{user_id}/{kind}   → 200/204 | 404 (already gone)
    GET    {base}/health                   → 2xx when reachable

Errors are mapped onto the sync error taxonomy:
  - transport failures, timeouts, 429 and 5xx → TransientNetworkError
  - other 4xx, non-JSON or non-object bodies  → MalformedResponseError

The client never retries on its own; retry policy lives in the sync engine.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from lifesprint.errors import MalformedResponseError, TransientNetworkError
from lifesprint.models.progress import ProgressRecord

logger = logging.getLogger(__name__)

PROGRESS = "progress"
USER = "user"
SETTINGS = "settings"


class RemoteStore:
    """
    Thin async wrapper over httpx.AsyncClient.

    Usage:
        async with RemoteStore("https://api.example.com", token="...") as remote:
            progress = await remote.get_progress(user_id)
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Root URL of the record store API.
            token: Bearer token; omitted from requests when empty.
            timeout: Per-request timeout in seconds.
            transport: Custom httpx transport (httpx.MockTransport in tests).
        """
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "RemoteStore":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── Progress ──────────────────────────────────────────────────────────────

    async def get_progress(self, user_id: str) -> Optional[ProgressRecord]:
        """Fetch the user's progress, or None if the store has none.

        Raises:
            MalformedResponseError: if the document does not parse as progress.
        """
        data = await self._get(user_id, PROGRESS)
        if data is None:
            return None
        try:
            return ProgressRecord.from_payload(data)
        except ValueError as exc:  # pydantic.ValidationError is a ValueError
            raise MalformedResponseError(f"Remote progress for {user_id} is malformed: {exc}") from exc

    async def upsert_progress(self, user_id: str, record: ProgressRecord) -> None:
        await self._put(user_id, PROGRESS, record.to_payload())

    async def delete_progress(self, user_id: str) -> None:
        await self._delete(user_id, PROGRESS)

    # ── User profile ──────────────────────────────────────────────────────────

    async def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self._get(user_id, USER)

    async def upsert_user(self, user_id: str, data: Dict[str, Any]) -> None:
        await self._put(user_id, USER, data)

    async def delete_user(self, user_id: str) -> None:
        await self._delete(user_id, USER)

    # ── Settings ──────────────────────────────────────────────────────────────

    async def get_settings(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self._get(user_id, SETTINGS)

    async def upsert_settings(self, user_id: str, data: Dict[str, Any]) -> None:
        await self._put(user_id, SETTINGS, data)

    async def delete_settings(self, user_id: str) -> None:
        await self._delete(user_id, SETTINGS)

    # ── Connectivity ──────────────────────────────────────────────────────────

    async def ping(self) -> bool:
        """Return True if the store answers its health check."""
        try:
            response = await self._client.get("/health")
        except httpx.HTTPError as exc:
            logger.debug("Remote store unreachable: %s", exc)
            return False
        return response.is_success

    # ─── Internal helpers ─────────────────────────────────────────────────────

    async def _get(self, user_id: str, kind: str) -> Optional[Dict[str, Any]]:
        response = await self._send("GET", user_id, kind)
        if response.status_code == 404:
            return None
        _raise_for_status(response, kind)
        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedResponseError(
                f"Remote {kind} for {user_id} is not JSON", response.status_code
            ) from exc
        if data is None:
            return None
        if not isinstance(data, dict):
            raise MalformedResponseError(
                f"Remote {kind} for {user_id} is not a JSON object", response.status_code
            )
        return data

    async def _put(self, user_id: str, kind: str, data: Dict[str, Any]) -> None:
        response = await self._send("PUT", user_id, kind, json=data)
        _raise_for_status(response, kind)

    async def _delete(self, user_id: str, kind: str) -> None:
        response = await self._send("DELETE", user_id, kind)
        if response.status_code == 404:
            return  # already gone
        _raise_for_status(response, kind)

    async def _send(self, method: str, user_id: str, kind: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, f"/users/{user_id}/{kind}", **kwargs)
        except httpx.TimeoutException as exc:
            raise TransientNetworkError(f"{method} {kind} timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise TransientNetworkError(f"{method} {kind} failed: {exc}") from exc
        except httpx.HTTPError as exc:
            # DecodingError, TooManyRedirects: the server answered but not usably
            raise MalformedResponseError(f"{method} {kind}: unusable response: {exc}") from exc


def _raise_for_status(response: httpx.Response, kind: str) -> None:
    status = response.status_code
    if response.is_success:
        return
    if status == 429 or status >= 500:
        raise TransientNetworkError(f"Remote store error on {kind}: HTTP {status}", status)
    raise MalformedResponseError(f"Unexpected response on {kind}: HTTP {status}", status)
