"""
tests/conftest.py -- Shared test fixtures for Taskboard integration tests.

This module provides:
  - _make_test_stores(): creates isolated in-memory DBs for users + tasks
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus a registered user's token for API tests
  - user_store / task_store: plain in-memory stores for unit tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

DEBUG and RATE_LIMIT_ENABLED must be set before any core/auth/api import:
get_settings() auto-generates SECRET_KEY only in debug mode, and the limiter
reads its enabled flag at import time.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from pathlib import Path

# CRITICAL: Set before any auth/core/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.avatars import AvatarStore
from auth.models import User
from auth.store import UserStore
from auth.tokens import create_access_token
from tasks.store import TaskStore

TEST_PASSWORD = "testpass123"


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, TaskStore]:
    """Create isolated named shared-memory SQLite stores for one test module.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (the module name is used).
    """
    url = f"sqlite:///file:test_taskboard_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=url), TaskStore(db_url=url)


def _patch_lifespan(user_store: UserStore, task_store: TaskStore, avatars: AvatarStore):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    isolated test DBs and a temporary upload directory.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.task_store = task_store
        app.state.avatars = avatars
        yield

    return test_lifespan


def make_user(store: UserStore, username: str, email: str | None = None, name: str = "Test User") -> User:
    """Insert a user with TEST_PASSWORD and return the persisted record."""
    user = User(username=username, email=email or f"{username}@example.com", name=name)
    user.id = store.create_user(user, TEST_PASSWORD)
    return store.get_by_id(user.id)


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request, tmp_path_factory) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use isolated in-memory stores. A user
    "testuser" / testuser@example.com is created before the client starts.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    user_store, task_store = _make_test_stores(suffix)
    avatars = AvatarStore(tmp_path_factory.mktemp(f"uploads_{suffix}"), max_bytes=5 * 1024 * 1024)

    user = make_user(user_store, "testuser", name="Test User")
    token = create_access_token(user, expire_seconds=3600)

    app.router.lifespan_context = _patch_lifespan(user_store, task_store, avatars)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, user.id

    task_store.close()
    user_store.close()


# ---------------------------------------------------------------------------
# Unit-test stores
# ---------------------------------------------------------------------------


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def task_store() -> Generator[TaskStore, None, None]:
    store = TaskStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def avatar_dir(tmp_path) -> Path:
    return tmp_path / "profiles"
