"""
tests/conftest.py -- Shared test fixtures for Notebox integration tests.

This module provides:
  - make_client: factory for TestClients wired to fresh in-memory stores
  - client: the default TestClient (no OAuth providers configured)
  - signup / auth_headers: register + login helpers for API tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process. Each
client gets a uuid-suffixed name so tests never see each other's rows.

Environment must be set before any project import: get_settings() is cached
on first call, and api/limiter.py reads RATE_LIMIT_ENABLED at import time.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator
from contextlib import ExitStack, asynccontextmanager
from typing import Any, Optional

# CRITICAL: Set env before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SECRET_KEY", "notebox-test-secret-key-0123456789abcdef")
os.environ["RATE_LIMIT_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient

import auth.passwords
from api.main import wire_services
from asgi import app
from auth.oauth import OAuthProvider
from auth.store import UserStore
from core.config import get_settings
from files.registry import InMemoryFileRegistry
from files.storage import FileStorage
from notes.store import NoteStore

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def memory_db_url(name: str) -> str:
    """Return a unique named shared-memory SQLite URL."""
    return f"sqlite:///file:{name}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def _patch_lifespan(
    settings,
    user_store: UserStore,
    note_store: NoteStore,
    file_storage: FileStorage,
    providers: dict[str, OAuthProvider],
):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    isolated test DBs and never contact a real OAuth provider.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_services(app.state, settings, user_store, note_store, file_storage, providers)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop the bcrypt work factor to the minimum so tests stay fast."""
    monkeypatch.setattr(auth.passwords, "BCRYPT_ROUNDS", 4)


@pytest.fixture
def make_client(tmp_path) -> Generator[Callable[..., TestClient], None, None]:
    """Yield a factory building TestClients with their own stores.

    make_client(providers={...}, **settings_overrides) -> TestClient

    follow_redirects=False is essential: tests assert on redirect Location
    headers, which are invisible once the client follows them.
    """
    stack = ExitStack()

    def _make(providers: Optional[dict[str, OAuthProvider]] = None, **overrides: Any) -> TestClient:
        settings = get_settings().model_copy(update=overrides) if overrides else get_settings()
        user_store = UserStore(memory_db_url("users"))
        note_store = NoteStore(memory_db_url("notes"))
        file_storage = FileStorage(tmp_path / uuid.uuid4().hex, InMemoryFileRegistry(), settings.max_upload_bytes)
        stack.callback(user_store.close)
        stack.callback(note_store.close)

        app.router.lifespan_context = _patch_lifespan(settings, user_store, note_store, file_storage, providers or {})
        return stack.enter_context(TestClient(app, follow_redirects=False, raise_server_exceptions=True))

    yield _make
    stack.close()


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()


# ---------------------------------------------------------------------------
# API helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def signup() -> Callable[..., str]:
    """Return signup(client, email, password, **login_extra) -> bearer token.

    Registers the account (asserting 201) and logs in (asserting 200).
    """

    def _signup(client: TestClient, email: str = "a@b.com", password: str = "secret1", **extra: str) -> str:
        resp = client.post("/auth/register", json={"email": email, "password": password})
        assert resp.status_code == 201, resp.text
        resp = client.post("/auth/login", json={"email": email, "password": password, **extra})
        assert resp.status_code == 200, resp.text
        return resp.json()["token"]

    return _signup


@pytest.fixture
def auth_headers(client: TestClient, signup) -> dict[str, str]:
    """Authorization header for a freshly registered a@b.com on the default client."""
    return {"Authorization": f"Bearer {signup(client)}"}
