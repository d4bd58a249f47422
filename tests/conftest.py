"""
tests/conftest.py -- Shared test fixtures for TaskTrack.

This module provides:
  - store fixtures (users, sessions, tracker) on a throwaway SQLite file
  - auth_service: AuthService wired to those stores
  - FakeClock: a controllable clock for CredentialIssuer expiry tests
  - api_client: TestClient with the lifespan patched onto isolated stores

Design: every fixture uses a real SQLite file under tmp_path rather than
':memory:'. The concurrency tests run many threads, each with its own pooled
connection, and a plain in-memory database is private to one connection.

The DEBUG env var must be set before any auth/core import so get_settings()
auto-generates both signing secrets instead of raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

# CRITICAL: set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.gateway import SessionGateway
from auth.policy import AuthorizationPolicy
from auth.service import AuthService
from auth.sessions import SessionStore
from auth.store import UserStore
from auth.tokens import CredentialIssuer
from core.config import get_settings
from tracker.store import TrackerStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock whose time only moves when a test moves it."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2030, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def _db_url(directory) -> str:
    return f"sqlite:///{directory / 'tasktrack_test.db'}"


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db_url(tmp_path) -> str:
    return _db_url(tmp_path)


@pytest.fixture
def issuer() -> CredentialIssuer:
    return CredentialIssuer.from_settings(get_settings())


@pytest.fixture
def users(db_url) -> Generator[UserStore, None, None]:
    store = UserStore(db_url)
    yield store
    store.close()


@pytest.fixture
def sessions(db_url) -> Generator[SessionStore, None, None]:
    store = SessionStore(db_url)
    yield store
    store.close()


@pytest.fixture
def tracker(db_url) -> Generator[TrackerStore, None, None]:
    store = TrackerStore(db_url)
    yield store
    store.close()


@pytest.fixture
def auth_service(issuer, users, sessions) -> AuthService:
    return AuthService(issuer, users, sessions)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(auth_service: AuthService, tracker: TrackerStore):
    """Return a lifespan that installs pre-built test components on app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.gateway = SessionGateway(auth_service.issuer)
        app.state.auth_service = auth_service
        app.state.tracker = tracker
        app.state.policy = AuthorizationPolicy()
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(tmp_path_factory) -> Generator[TestClient, None, None]:
    """Yield a TestClient running the real app against isolated stores.

    One client per test module. Tests register their own identities with
    distinct emails, so modules do not depend on test ordering.
    """
    url = _db_url(tmp_path_factory.mktemp("api"))
    users = UserStore(url)
    sessions = SessionStore(url)
    tracker = TrackerStore(url)
    service = AuthService(CredentialIssuer.from_settings(get_settings()), users, sessions)

    app.router.lifespan_context = _patch_lifespan(service, tracker)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client

    tracker.close()
    sessions.close()
    users.close()


def register(client: TestClient, email: str, password: str = "secret1", name: str | None = None) -> dict:
    """Register through the API and return the response body (asserts 201)."""
    resp = client.post("/api/v1/auth/register", json={"email": email, "password": password, "name": name})
    assert resp.status_code == 201, resp.text
    return resp.json()


def bearer(body: dict) -> dict[str, str]:
    return {"Authorization": f"Bearer {body['access_token']}"}
