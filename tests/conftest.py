"""
tests/conftest.py -- Shared test fixtures for SessionKit.

This module provides:
  - make_stores(): isolated in-memory DBs for the credential store and ledger
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - client: TestClient over the real app with fresh stores per test
  - asgi_app: the real app with state wired directly, for httpx.ASGITransport

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

The DEBUG env var must be set before any project import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app, build_state
from auth.history import LoginHistoryStore
from auth.store import UserStore
from core.config import get_settings

PASSWORD = "longpass1"


def make_stores(name: str | None = None) -> tuple[UserStore, LoginHistoryStore]:
    """Create a credential store and ledger sharing one named in-memory DB."""
    name = name or uuid.uuid4().hex
    url = f"sqlite:///file:test_{name}?mode=memory&cache=shared&uri=true"
    return UserStore(url), LoginHistoryStore(url)


def _patch_lifespan(user_store: UserStore, ledger: LoginHistoryStore):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        build_state(app, get_settings(), user_store, ledger)
        yield

    return test_lifespan


@pytest.fixture
def stores() -> Generator[tuple[UserStore, LoginHistoryStore], None, None]:
    user_store, ledger = make_stores()
    yield user_store, ledger
    user_store.close()
    ledger.close()


@pytest.fixture
def client(stores) -> Generator[TestClient, None, None]:
    """TestClient against the real app with empty, isolated stores.

    The client keeps cookies between requests like a browser would, so a
    successful POST /auth/login authenticates the following calls.
    """
    user_store, ledger = stores
    app.router.lifespan_context = _patch_lifespan(user_store, ledger)
    app.dependency_overrides.clear()
    with TestClient(app, raise_server_exceptions=True) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def asgi_app(stores):
    """The real app with state wired directly (httpx.ASGITransport skips lifespan)."""
    user_store, ledger = stores
    build_state(app, get_settings(), user_store, ledger)
    app.dependency_overrides.clear()
    yield app
    app.dependency_overrides.clear()


def register(client: TestClient, username: str = "alice", email: str = "a@x.com", password: str = PASSWORD, **profile):
    return client.post(
        "/auth/register",
        json={"username": username, "password": password, "email": email, **profile},
    )


def login(client: TestClient, username: str = "alice", password: str = PASSWORD):
    return client.post("/auth/login", json={"username": username, "password": password})
