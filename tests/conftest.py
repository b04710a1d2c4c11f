"""
tests/conftest.py -- Shared test fixtures for TokenGate.

This module provides:
  - store / accounts / authenticator: unit-level fixtures on a private
    in-memory SQLite database per test
  - user: a stored account with a known password
  - api_client: TestClient with a patched lifespan and a bearer token

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process,
and disappears when the store is closed. The pool is named explicitly
(SingletonThreadPool, one connection per thread) rather than inferred from
the URI.

BCRYPT_COST must be set before any auth/core import so get_settings() picks
up the cheap work factor; cost 12 would make the suite take minutes.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set BCRYPT_COST before any auth/core import so get_settings()
# builds Settings with the fast test work factor.
os.environ.setdefault("BCRYPT_COST", "4")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import SingletonThreadPool

from api.main import app
from auth.accounts import AccountManager
from auth.authenticator import TokenAuthenticator
from auth.models import User
from auth.store import AuthStore
from auth.tokens import issue_token

TEST_PASSWORD = "Test@123"
TOKEN_LENGTH = 26


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[AuthStore, None, None]:
    s = AuthStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def accounts(store: AuthStore) -> AccountManager:
    return AccountManager(store, cost=4)


@pytest.fixture
def authenticator(store: AuthStore) -> TokenAuthenticator:
    return TokenAuthenticator(store, token_length=TOKEN_LENGTH)


@pytest.fixture
def user(accounts: AccountManager) -> User:
    """A stored, active user whose password is TEST_PASSWORD."""
    u = User(first_name="Some", last_name="Guy", email="test@test.com")
    accounts.create(u, TEST_PASSWORD)
    return u


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(store: AuthStore):
    """Return an async context manager that replaces the real lifespan.

    Wires a pre-created test store into app.state so TestClient routes see
    an isolated test DB rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.store = store
        app.state.accounts = AccountManager(store, cost=4)
        app.state.authenticator = TokenAuthenticator(store, token_length=TOKEN_LENGTH)
        yield

    return test_lifespan


@pytest.fixture
def api_client() -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use an isolated in-memory store.
    The user (apiadmin@test.com / TEST_PASSWORD) is created and issued a token
    before the client starts.
    """
    api_store = AuthStore(
        "sqlite:///file:test_auth_api?mode=memory&cache=shared&uri=true",
        poolclass=SingletonThreadPool,
    )
    api_accounts = AccountManager(api_store, cost=4)

    admin = User(first_name="Api", last_name="Admin", email="apiadmin@test.com")
    uid = api_accounts.create(admin, TEST_PASSWORD)
    _, token = issue_token(api_store, admin, ttl=3600)

    app.router.lifespan_context = _patch_lifespan(api_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, uid

    api_store.close()
