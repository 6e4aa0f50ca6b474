"""
tests/conftest.py -- Shared test fixtures for ItemVault.

This module provides:
  - user_store / item_store: fresh file-backed stores under tmp_path (unit tests)
  - _patch_lifespan(): wires test components into app.state, bypassing real startup
  - api_client: TestClient plus Admin and User tokens for API integration tests

Design: every store is built on its own temporary SQLite file or JSON file, so
tests never see each other's data and nothing touches the real itemvault.db.

The DEBUG env var must be set before any api/ import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError. The login
rate limit is lifted so the whole suite can log in as often as it needs.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from pathlib import Path

# CRITICAL: Set these before any api/core import -- Settings is read at import time.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import TokenService, hash_password
from items.backends import JsonItemBackend
from items.store import ItemStore

TEST_SECRET = "test-secret-key-0123456789abcdef0123456789"

ADMIN_USERNAME = "testadmin"
ADMIN_PASSWORD = "testpass123"
USER_USERNAME = "testuser"
USER_PASSWORD = "userpass123"


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def user_store(tmp_path: Path) -> Generator[UserStore, None, None]:
    """UserStore on a throwaway SQLite file with one Admin and one User."""
    store = UserStore(f"sqlite:///{tmp_path / 'auth.db'}")
    store.create_user(User(username=ADMIN_USERNAME, password_hash=hash_password(ADMIN_PASSWORD), role=Role.admin))
    store.create_user(User(username=USER_USERNAME, password_hash=hash_password(USER_PASSWORD), role=Role.user))
    yield store
    store.close()


@pytest.fixture
def item_store(tmp_path: Path) -> ItemStore:
    """ItemStore on a fresh JSON file, seeded with the two default items."""
    return ItemStore(JsonItemBackend(tmp_path / "items.json"))


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, items: ItemStore, tokens: TokenService):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test components into app.state so TestClient routes see
    isolated stores rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.items = items
        app.state.tokens = tokens
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(tmp_path_factory: pytest.TempPathFactory) -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, admin_token, user_token) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers, dependencies, and exception handlers.
    base_url uses "localhost" so TrustedHostMiddleware accepts the requests.
    """
    tmp = tmp_path_factory.mktemp("api")
    user_store = UserStore(f"sqlite:///{tmp / 'auth.db'}")
    admin_id = user_store.create_user(
        User(username=ADMIN_USERNAME, password_hash=hash_password(ADMIN_PASSWORD), role=Role.admin)
    )
    user_id = user_store.create_user(
        User(username=USER_USERNAME, password_hash=hash_password(USER_PASSWORD), role=Role.user)
    )
    items = ItemStore(JsonItemBackend(tmp / "items.json"))
    tokens = TokenService(TEST_SECRET)

    admin_token = tokens.issue(admin_id, Role.admin)
    user_token = tokens.issue(user_id, Role.user)

    app.router.lifespan_context = _patch_lifespan(user_store, items, tokens)

    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield client, admin_token, user_token

    items.close()
    user_store.close()