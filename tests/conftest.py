"""Shared test fixtures."""
import json
from typing import Dict, Generator, List, Optional
from unittest.mock import AsyncMock

import httpx
import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from lifesprint.models.local import LocalRecord  # noqa: F401
from lifesprint.models.sync import DeadLetterOperation, QueuedOperation, SyncStatusRecord  # noqa: F401
from lifesprint.db.local_cache import LocalCache
from lifesprint.models.progress import ProgressRecord
from lifesprint.remote.client import RemoteStore
from lifesprint.sync.connectivity import ConnectivityMonitor
from lifesprint.sync.engine import SyncEngine
from lifesprint.sync.queue import DurableQueue
from lifesprint.sync.status import SyncStatusTracker

REMOTE_URL = "http://remote.test"


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


@pytest.fixture
def tracker(engine) -> SyncStatusTracker:
    return SyncStatusTracker(engine)


@pytest.fixture
def queue(engine, tracker) -> DurableQueue:
    return DurableQueue(engine, tracker)


@pytest.fixture
def cache(engine) -> LocalCache:
    return LocalCache(engine)


@pytest.fixture
def monitor() -> ConnectivityMonitor:
    return ConnectivityMonitor(online=True)


# ─── Remote store doubles ─────────────────────────────────────────────────────

class FakeRemoteServer:
    """In-memory record store served through httpx.MockTransport."""

    def __init__(self):
        self.documents: Dict[str, dict] = {}
        self.offline = False
        self.fail_status: Optional[int] = None
        self.garbled = False
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.offline:
            raise httpx.ConnectError("network unreachable", request=request)
        self.requests.append(request)
        path = request.url.path
        if path == "/health":
            return httpx.Response(200, json={"ok": True})
        if self.fail_status is not None:
            return httpx.Response(self.fail_status)
        if self.garbled:
            # Claims gzip but is not, so reading the body fails
            return httpx.Response(
                200, headers={"Content-Encoding": "gzip"}, stream=httpx.ByteStream(b"garbled")
            )

        if request.method == "GET":
            if path not in self.documents:
                return httpx.Response(404)
            return httpx.Response(200, json=self.documents[path])
        if request.method == "PUT":
            self.documents[path] = json.loads(request.content)
            return httpx.Response(200)
        if request.method == "DELETE":
            if self.documents.pop(path, None) is None:
                return httpx.Response(404)
            return httpx.Response(204)
        return httpx.Response(405)

    def calls(self, method: str, kind: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path.endswith(f"/{kind}")]

    def put_progress(self, user_id: str, record: ProgressRecord) -> None:
        self.documents[f"/users/{user_id}/progress"] = record.to_payload()

    def progress(self, user_id: str) -> Optional[ProgressRecord]:
        data = self.documents.get(f"/users/{user_id}/progress")
        return ProgressRecord.from_payload(data) if data is not None else None


@pytest.fixture
def server() -> FakeRemoteServer:
    return FakeRemoteServer()


@pytest.fixture
def remote(server) -> RemoteStore:
    """A real RemoteStore talking to the in-memory server."""
    return RemoteStore(REMOTE_URL, token="test-token", transport=httpx.MockTransport(server.handler))


@pytest.fixture
def mock_remote() -> AsyncMock:
    """RemoteStore double with an empty store that answers every call."""
    mock = AsyncMock(spec=RemoteStore)
    mock.get_progress.return_value = None
    mock.get_user.return_value = None
    mock.get_settings.return_value = None
    mock.ping.return_value = True
    return mock


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def sync_engine(queue, tracker, mock_remote, cache, monitor, sleep) -> SyncEngine:
    """SyncEngine over the in-memory DB and the mocked remote store. Backoff sleeps are mocked."""
    return SyncEngine(queue, tracker, mock_remote, cache, monitor, sleep=sleep)


@pytest.fixture
def live_engine(queue, tracker, remote, cache, monitor, sleep) -> SyncEngine:
    """SyncEngine over the in-memory DB and the fake HTTP server."""
    return SyncEngine(queue, tracker, remote, cache, monitor, sleep=sleep)
