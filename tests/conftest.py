"""
tests/conftest.py -- Shared test fixtures for BusTrack unit and integration tests.

This module provides:
  - memory_db_url(): a unique named shared-memory SQLite URL
  - make_store(): an isolated DocumentStore on such a URL
  - _patch_lifespan(): wires a test store into app.state, bypassing real startup
  - api_client: TestClient plus admin and supervisor access tokens

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient and anyio.to_thread run store calls in worker threads.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

DEBUG and BCRYPT_ROUNDS must be set before any core/auth import so
get_settings() auto-generates signing secrets and hashing stays fast.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any core/auth import so get_settings() can
# auto-generate the JWT secrets in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import UNIQUE_FIELDS, app, build_state
from auth.models import User
from auth.store import UserRepository
from auth.tokens import TokenIssuer, hash_password
from core.config import get_settings
from storage.documents import DocumentStore

ADMIN_EMAIL = "admin@bustrack.test"
SUPERVISOR_EMAIL = "supervisor@bustrack.test"
TEST_PASSWORD = "Str0ng!Pass"

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def memory_db_url(prefix: str = "test") -> str:
    """Return a named shared-memory SQLite URL unique to this call."""
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def make_store(prefix: str = "test") -> DocumentStore:
    """Create an isolated DocumentStore with the application's unique fields."""
    return DocumentStore(memory_db_url(prefix), unique_fields=UNIQUE_FIELDS)


def run(coro):
    """Drive one async service call to completion from a sync test."""
    return asyncio.run(coro)


def _patch_lifespan(store: DocumentStore):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-created test store into app.state through the same
    build_state() the real lifespan uses, so routes see an isolated DB and
    a fresh rate limiter.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        build_state(app, get_settings(), store)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[DocumentStore, None, None]:
    """Function-scoped isolated document store for unit tests."""
    s = make_store("unit")
    yield s
    s.close()


@pytest.fixture
def issuer() -> TokenIssuer:
    return TokenIssuer(get_settings())


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, admin_token, supervisor_token) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use an isolated in-memory store.
    Both users are created before the client starts.
    """
    store = make_store("api")
    users = UserRepository(store)
    password_hash = hash_password(TEST_PASSWORD, rounds=4)
    admin = users.create(User(email=ADMIN_EMAIL, name="Test Admin", password_hash=password_hash, role="admin"))
    supervisor = users.create(
        User(email=SUPERVISOR_EMAIL, name="Test Supervisor", password_hash=password_hash, role="supervisor")
    )

    issuer = TokenIssuer(get_settings())
    admin_token = issuer.issue_pair(admin).access_token
    supervisor_token = issuer.issue_pair(supervisor).access_token

    app.router.lifespan_context = _patch_lifespan(store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, admin_token, supervisor_token

    store.close()


@pytest.fixture(autouse=True)
def _reset_rate_limits(request) -> None:
    """Start every API test with empty rate-limit windows."""
    if "api_client" in request.fixturenames:
        client, _, _ = request.getfixturevalue("api_client")
        client.app.state.limiter.reset()


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
