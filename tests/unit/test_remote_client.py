"""Tests for the HTTP remote store client (httpx.MockTransport, no network)."""
import json

import httpx
import pytest

from lifesprint.errors import MalformedResponseError, TransientNetworkError
from lifesprint.models.progress import DayEntry, ProgressRecord
from lifesprint.remote.client import RemoteStore


def _store(handler, token="secret") -> RemoteStore:
    return RemoteStore("http://remote.test/api/", token=token, transport=httpx.MockTransport(handler))


class TestRequests:
    @pytest.mark.asyncio
    async def test_get_progress_parses_document(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"currentDay": 4, "days": {"4": {"gratitude": ["sun"]}}})

        async with _store(handler) as store:
            record = await store.get_progress("u1")

        assert record.current_day == 4
        assert record.days[4].gratitude == ["sun"]
        assert seen[0].method == "GET"
        assert seen[0].url.path == "/api/users/u1/progress"
        assert seen[0].headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_no_authorization_header_without_token(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(404)

        async with _store(handler, token="") as store:
            await store.get_settings("u1")

        assert "Authorization" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_missing_document_is_none(self):
        async with _store(lambda r: httpx.Response(404)) as store:
            assert await store.get_progress("u1") is None
            assert await store.get_user("u1") is None

    @pytest.mark.asyncio
    async def test_upsert_sends_camel_case_json(self):
        bodies = []

        def handler(request):
            bodies.append((request.method, request.url.path, json.loads(request.content)))
            return httpx.Response(200)

        record = ProgressRecord(current_day=2, days={2: DayEntry(exercise_completed=True)})
        async with _store(handler) as store:
            await store.upsert_progress("u1", record)
            await store.upsert_settings("u1", {"theme": "dark"})

        method, path, body = bodies[0]
        assert (method, path) == ("PUT", "/api/users/u1/progress")
        assert body["currentDay"] == 2
        assert body["days"]["2"]["exerciseCompleted"] is True
        assert bodies[1] == ("PUT", "/api/users/u1/settings", {"theme": "dark"})

    @pytest.mark.asyncio
    async def test_delete_of_missing_document_succeeds(self):
        async with _store(lambda r: httpx.Response(404)) as store:
            await store.delete_user("u1")

    @pytest.mark.asyncio
    async def test_delete(self):
        seen = []

        def handler(request):
            seen.append((request.method, request.url.path))
            return httpx.Response(204)

        async with _store(handler) as store:
            await store.delete_progress("u1")

        assert seen == [("DELETE", "/api/users/u1/progress")]


class TestErrorMapping:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [429, 500, 503])
    async def test_retryable_statuses_are_transient(self, status):
        async with _store(lambda r: httpx.Response(status)) as store:
            with pytest.raises(TransientNetworkError) as exc_info:
                await store.upsert_user("u1", {"name": "A"})
        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 422])
    async def test_other_client_errors_are_malformed(self, status):
        async with _store(lambda r: httpx.Response(status)) as store:
            with pytest.raises(MalformedResponseError):
                await store.get_user("u1")

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _store(handler) as store:
            with pytest.raises(TransientNetworkError):
                await store.get_progress("u1")

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        async with _store(handler) as store:
            with pytest.raises(TransientNetworkError, match="timed out"):
                await store.upsert_settings("u1", {})

    @pytest.mark.asyncio
    async def test_non_json_body_is_malformed(self):
        async with _store(lambda r: httpx.Response(200, content=b"<html>")) as store:
            with pytest.raises(MalformedResponseError):
                await store.get_settings("u1")

    @pytest.mark.asyncio
    async def test_undecodable_body_is_malformed(self):
        def handler(request):
            return httpx.Response(
                200,
                headers={"Content-Encoding": "gzip"},
                stream=httpx.ByteStream(b"not gzip at all"),
            )

        async with _store(handler) as store:
            with pytest.raises(MalformedResponseError, match="unusable response"):
                await store.get_settings("u1")

    @pytest.mark.asyncio
    async def test_non_object_body_is_malformed(self):
        async with _store(lambda r: httpx.Response(200, json=[1, 2])) as store:
            with pytest.raises(MalformedResponseError):
                await store.get_user("u1")

    @pytest.mark.asyncio
    async def test_invalid_progress_is_malformed(self):
        async with _store(lambda r: httpx.Response(200, json={"currentDay": "soon"})) as store:
            with pytest.raises(MalformedResponseError):
                await store.get_progress("u1")


class TestPing:
    @pytest.mark.asyncio
    async def test_healthy(self):
        async with _store(lambda r: httpx.Response(200)) as store:
            assert await store.ping() is True

    @pytest.mark.asyncio
    async def test_unhealthy_status(self):
        async with _store(lambda r: httpx.Response(503)) as store:
            assert await store.ping() is False

    @pytest.mark.asyncio
    async def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _store(handler) as store:
            assert await store.ping() is False
