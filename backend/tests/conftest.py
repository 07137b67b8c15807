"""Shared pytest fixtures.

Provides:
- A file-backed SQLite document store per test (tables from Base.metadata)
- A local attachment store under tmp_path
- Notification doubles (recording fanout, fake subscribers, webhook transport)
- A fake Identity Provider served through httpx.MockTransport
- A TestClient with every collaborator swapped via dependency_overrides

Usage:
    def test_publish(client, auth_headers):
        response = client.post("/", headers=auth_headers)
        assert response.status_code == 200
"""

import os
import sys
import tempfile
import time
from pathlib import Path

# Settings are read at import time, so point them somewhere harmless first.
_TEST_ROOT = Path(tempfile.mkdtemp(prefix="uploadflow-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_ROOT / 'uploadflow.db'}"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["STORAGE_PATH"] = str(_TEST_ROOT / "storage")
os.environ["LOG_JSON"] = "false"
os.environ["SMTP_ENABLED"] = "false"
os.environ["OAUTH_REDIRECT_URL"] = "https://app.example.com/logged-in"
os.environ["OAUTH_ALLOWED_RETURN_URLS"] = "https://app.example.com/other"
for _name in ("WEBHOOK_URL", "REDIS_URL"):
    os.environ.pop(_name, None)

backend_root = Path(__file__).parent.parent
sys.path.insert(0, str(backend_root))

from typing import Callable, Generator, List

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from uploadflow.auth.oauth_state import InMemoryOAuthStateStore
from uploadflow.database import get_db
from uploadflow.dependencies import (
    get_fanout,
    get_identity_client,
    get_oauth_state_store,
    get_storage,
    get_subscriber_registry,
)
from uploadflow.infrastructure.identity import IdentityProviderClient
from uploadflow.infrastructure.storage import LocalStorageAdapter
from uploadflow.main import create_app
from uploadflow.models import Base
from uploadflow.notifications import NotificationFanout, SubscriberRegistry, WebhookNotifier

ALICE = {"id": 1, "username": "alice", "name": "Alice Example"}
BOB = {"id": 2, "username": "bob", "name": "Bob Example"}
TOKENS = {"alice-token": ALICE, "bob-token": BOB}

WEBHOOK_URL = "https://hooks.example.com/uploads"


class RecordingFanout(NotificationFanout):
    """Real fanout that also remembers every dispatched upload id."""

    def __init__(self, webhook: WebhookNotifier, registry: SubscriberRegistry):
        super().__init__(webhook, registry)
        self.dispatched: List[str] = []

    def dispatch(self, upload):
        self.dispatched.append(str(upload.id))
        return super().dispatch(upload)


class FakeSubscriber:
    """Subscriber double recording frames; optionally fails every send."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.frames: List[str] = []

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise ConnectionError("subscriber went away")
        self.frames.append(data)


def identity_provider_handler(request: httpx.Request) -> httpx.Response:
    """Minimal GitLab-like Identity Provider."""
    if request.url.path.endswith("/oauth/token"):
        form = dict(httpx.QueryParams(request.content.decode()))
        if form.get("code") == "good-code":
            return httpx.Response(200, json={"access_token": "alice-token", "token_type": "Bearer"})
        return httpx.Response(400, json={"error": "invalid_grant"})

    if request.url.path.endswith("/api/v4/user"):
        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        user = TOKENS.get(token)
        if user is None:
            return httpx.Response(401, json={"message": "401 Unauthorized"})
        return httpx.Response(200, json=user)

    return httpx.Response(404)


def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll until predicate() holds (background deliveries run on another thread)."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def storage(tmp_path) -> LocalStorageAdapter:
    return LocalStorageAdapter(tmp_path / "storage")


@pytest.fixture
def registry() -> SubscriberRegistry:
    return SubscriberRegistry()


@pytest.fixture
def webhook_requests() -> List[httpx.Request]:
    return []


@pytest.fixture
def webhook(webhook_requests) -> WebhookNotifier:
    def handler(request: httpx.Request) -> httpx.Response:
        webhook_requests.append(request)
        return httpx.Response(200)

    return WebhookNotifier(WEBHOOK_URL, timeout=1.0, transport=httpx.MockTransport(handler))


@pytest.fixture
def fanout(webhook, registry) -> RecordingFanout:
    return RecordingFanout(webhook, registry)


@pytest.fixture
def identity_client() -> IdentityProviderClient:
    return IdentityProviderClient(
        oauth_base_url="https://idp.example.com/oauth",
        api_base_url="https://idp.example.com/api/v4",
        client_id="client-id",
        client_secret="client-secret",
        redirect_uri="http://testserver/oauth/code",
        transport=httpx.MockTransport(identity_provider_handler),
    )


@pytest.fixture
def state_store() -> InMemoryOAuthStateStore:
    return InMemoryOAuthStateStore(ttl_seconds=60, max_entries=100)


@pytest.fixture
def client(session_factory, storage, registry, fanout, identity_client, state_store):
    """TestClient with every collaborator replaced by a test double.

    Entered as a context manager so background deliveries keep running on
    the client's event loop between requests.
    """
    app = create_app()

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_subscriber_registry] = lambda: registry
    app.dependency_overrides[get_fanout] = lambda: fanout
    app.dependency_overrides[get_identity_client] = lambda: identity_client
    app.dependency_overrides[get_oauth_state_store] = lambda: state_store

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": "Bearer alice-token"}


@pytest.fixture
def other_auth_headers():
    return {"Authorization": "Bearer bob-token"}
