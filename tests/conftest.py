"""
tests/conftest.py -- Shared test fixtures for SmartFeedback tests.

This module provides:
  - make_engine(): isolated named shared-memory SQLite engine
  - _patch_lifespan(): wires test services into app.state, bypassing real startup
  - api_client: TestClient plus an admin token for API integration tests
  - user_auth: an ordinary account registered and logged in through the API
  - engine / audit_store / user_store / feedback_store: per-test store fixtures
  - FixedClock: a settable clock for expiry and timestamp-ordering tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

The DEBUG env var must be set before any core/api import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: Set DEBUG before any core/api import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, attach_services
from audit.store import AuditStore
from auth.models import User
from auth.passwords import hash_password
from auth.store import UserStore
from auth.tokens import TokenConfig
from core.database import create_db_engine
from feedback.store import FeedbackStore

TEST_TOKEN_CONFIG = TokenConfig(secret_key="test-signing-key-" + "k" * 32, expire_seconds=3600)

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "Adm1n!pass"
USER_EMAIL = "user@example.com"
USER_PASSWORD = "Us3r!pass"

# Repeated logins in one module must not trip the per-IP login limit.
limiter.enabled = False


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_engine(name: str):
    """Create an isolated named shared-memory SQLite engine with the schema."""
    return create_db_engine(f"sqlite:///file:test_{name}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(engine, token_config: TokenConfig, clock=None):
    """Return an async context manager that replaces the real lifespan.

    Wires services built on the test engine into app.state so TestClient
    routes never touch the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        if clock is None:
            attach_services(app, engine, token_config)
        else:
            attach_services(app, engine, token_config, clock=clock)
        yield

    return test_lifespan


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Module-scoped API fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, admin_token, admin_id) for API integration tests.

    The admin is created directly in the store (registration never grants
    admin) and then logs in through the real endpoint, so the fixture login
    itself writes one "privileged login" audit entry.
    """
    engine = make_engine(f"api_{request.module.__name__.rsplit('.', 1)[-1]}_{uuid.uuid4().hex[:8]}")
    admin_id = UserStore(engine).create_user(
        User(
            full_name="Test Admin",
            email=ADMIN_EMAIL,
            hashed_password=hash_password(ADMIN_PASSWORD),
            is_admin=True,
        )
    )

    app.router.lifespan_context = _patch_lifespan(engine, TEST_TOKEN_CONFIG)

    with TestClient(app, raise_server_exceptions=True) as client:
        resp = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
        assert resp.status_code == 200, resp.text
        yield client, resp.json()["token"], admin_id

    engine.dispose()


@pytest.fixture(scope="module")
def user_auth(api_client) -> tuple[str, int]:
    """Register and log in an ordinary user through the API. Returns (token, user_id)."""
    client, _admin_token, _admin_id = api_client
    resp = client.post(
        "/api/auth/register",
        json={"fullName": "Regular User", "email": USER_EMAIL, "password": USER_PASSWORD, "gender": "F"},
    )
    assert resp.status_code == 200, resp.text
    user_id = resp.json()["id"]
    resp = client.post("/api/auth/login", json={"email": USER_EMAIL, "password": USER_PASSWORD})
    assert resp.status_code == 200, resp.text
    return resp.json()["token"], user_id


# ---------------------------------------------------------------------------
# Store fixtures -- fresh database per test
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def engine():
    eng = make_engine(f"store_{uuid.uuid4().hex}")
    yield eng
    eng.dispose()


@pytest.fixture
def audit_store(engine, clock) -> AuditStore:
    return AuditStore(engine, clock=clock)


@pytest.fixture
def user_store(engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def feedback_store(engine, audit_store) -> FeedbackStore:
    return FeedbackStore(engine, audit_store)


@pytest.fixture
def admin_user(user_store) -> User:
    uid = user_store.create_user(
        User(full_name="Ada Admin", email="ada@example.com", hashed_password=hash_password("Adm1n!pass"), is_admin=True)
    )
    return user_store.get_by_id(uid)


@pytest.fixture
def plain_user(user_store) -> User:
    uid = user_store.create_user(
        User(full_name="Bob User", email="bob@example.com", hashed_password=hash_password("B0b!pass"))
    )
    return user_store.get_by_id(uid)
