"""
tests/conftest.py -- Shared test fixtures for HerdCare unit and integration tests.

This module provides:
  - settings / store / service: an AuthService over an isolated in-memory store
  - _patch_lifespan(): wires a test store into app.state, bypassing real startup
  - api_client: TestClient plus an admin bearer token and the backing store
  - register_account: factory that registers an account over HTTP

Design: Named shared-memory SQLite URIs (not plain :memory:) are used for the
API client because TestClient runs def route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. Unit fixtures stay on plain :memory: since they run on one
thread.

The signing secrets must be set before any api/ import: api.main resolves
Settings at import time and refuses to start without them. The bcrypt cost is
lowered and the rate limits raised so the suite runs quickly and is never
throttled by its own traffic.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any api/auth/core import.
os.environ.setdefault("ACCESS_TOKEN_SECRET", "test-access-secret-0123456789abcdef0123")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-secret-fedcba9876543210fedc")
os.environ.setdefault("PASSWORD_HASH_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "10000/minute")
os.environ.setdefault("REGISTER_RATE_LIMIT", "10000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import Account, Role
from auth.service import AuthService
from auth.store import AccountStore
from auth.tokens import hash_password, mint_access_token
from core.config import Settings, get_settings
from helpers import unique_email

ADMIN_EMAIL = "admin@herdcare.test"
ADMIN_PASSWORD = "adminpass123"


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def store(settings: Settings) -> Generator[AccountStore, None, None]:
    """Fresh in-memory AccountStore per test."""
    s = AccountStore("sqlite:///:memory:", refresh_ttl_seconds=settings.refresh_token_expire_seconds)
    yield s
    s.close()


@pytest.fixture
def service(settings: Settings, store: AccountStore) -> AuthService:
    return AuthService(settings, store)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(store: AccountStore, settings: Settings):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = settings
        app.state.account_store = store
        app.state.auth_service = AuthService(settings, store)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, AccountStore], None, None]:
    """Yield (client, admin_token, store) for API integration tests.

    Each test module gets its own named in-memory database. The admin account
    is created directly in the store (self-registration of admins is off) and
    a bearer token is minted for it.
    """
    settings = get_settings()
    db_name = request.module.__name__.rsplit(".", 1)[-1]
    store = AccountStore(
        f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true",
        refresh_ttl_seconds=settings.refresh_token_expire_seconds,
    )

    admin = Account(
        email=ADMIN_EMAIL,
        role=Role.ADMIN,
        full_name="Test Admin",
        phone="+15550000000",
        hashed_password=hash_password(ADMIN_PASSWORD, rounds=settings.password_hash_rounds),
    )
    admin_id = store.create_account(admin)
    token = mint_access_token(admin_id, settings.access_token_secret, 3600)

    app.router.lifespan_context = _patch_lifespan(store, settings)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, store

    store.close()


@pytest.fixture
def register_account(api_client) -> Callable[..., tuple[dict, str]]:
    """Return a factory: register(role="farmer", **overrides) -> (body, refresh_token).

    The client cookie jar is cleared after each call; tests send refresh
    tokens explicitly so the cookie in play is never ambiguous.
    """
    client, _, _ = api_client

    def _register(role: str = "farmer", password: str = "secret123", **overrides) -> tuple[dict, str]:
        body = {
            "email": unique_email(role),
            "password": password,
            "full_name": "Asha Patil",
            "phone": "+919876543210",
            "role": role,
            **overrides,
        }
        resp = client.post("/api/v1/auth/register", json=body)
        assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
        refresh = resp.cookies.get("refresh_token")
        client.cookies.clear()
        return resp.json(), refresh

    return _register

