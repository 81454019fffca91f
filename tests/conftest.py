"""
tests/conftest.py -- Shared test fixtures for taskwarden integration tests.

This module provides:
  - _make_test_stores(): creates isolated in-memory DBs for users + tasks
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus ready-made accounts and access tokens

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment variables must be set before any api/auth/core import:
  DEBUG=true             -- get_settings() auto-generates SECRET_KEY
  BCRYPT_ROUNDS=4        -- the cheapest cost bcrypt accepts; keeps tests fast
  LOGIN_RATE_LIMIT       -- high enough that test traffic is never throttled
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

# CRITICAL: Set these before any auth/core import so get_settings() sees them.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app, init_app_state
from auth.models import CallerIdentity, Role, TokenType, User
from auth.passwords import PasswordHasher
from auth.store import UserStore
from auth.tokens import TokenCodec
from core.config import AuthConfig, get_settings
from tasks.store import TaskStore

# Accounts created for every api_client module. Passwords satisfy the
# default strength policy so they can also be used against /auth/login.
SEED_USERS = {
    "testadmin": ("testadmin@taskwarden.dev", "Admin-pass1!", Role.admin),
    "alice": ("alice@taskwarden.dev", "Alice-pass1!", Role.user),
    "bob": ("bob@taskwarden.dev", "Bob-pass1!", Role.user),
    "mona": ("mona@taskwarden.dev", "Mona-pass1!", Role.manager),
}


@dataclass
class ApiHarness:
    """What api_client yields: the client, plus ids and access tokens by username."""

    client: TestClient
    codec: TokenCodec
    ids: dict[str, int] = field(default_factory=dict)
    tokens: dict[str, str] = field(default_factory=dict)

    def headers(self, username: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.tokens[username]}"}


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, TaskStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (the test module name is used).
    """
    users_url = f"sqlite:///file:test_users_{db_suffix}?mode=memory&cache=shared&uri=true"
    tasks_url = f"sqlite:///file:test_tasks_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=users_url), TaskStore(db_url=tasks_url)


def _patch_lifespan(config: AuthConfig, user_store: UserStore, task_store: TaskStore):
    """Return an async context manager that replaces the real lifespan.

    Uses the same init_app_state() as production startup, so routes see the
    real auth components wired to the isolated test stores.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        init_app_state(app, config, user_store, task_store)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def auth_config() -> AuthConfig:
    return AuthConfig.from_settings(get_settings())


@pytest.fixture(scope="module")
def api_client(request, auth_config: AuthConfig) -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use isolated in-memory stores. Seed
    accounts are created before the client starts; their access tokens are
    signed with the same AuthConfig the app is wired with.
    """
    user_store, task_store = _make_test_stores(request.module.__name__.replace(".", "_"))
    hasher = PasswordHasher.from_config(auth_config)
    codec = TokenCodec(auth_config)

    harness_ids: dict[str, int] = {}
    harness_tokens: dict[str, str] = {}
    for username, (email, password, role) in SEED_USERS.items():
        user = User(
            username=username,
            email=email,
            hashed_password=hasher.hash(password).unwrap(),
            role=role.value,
        )
        uid = user_store.create_user(user)
        harness_ids[username] = uid
        identity = CallerIdentity(id=uid, username=username, email=email, role=role)
        harness_tokens[username] = codec.issue(identity, TokenType.access)

    app.router.lifespan_context = _patch_lifespan(auth_config, user_store, task_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiHarness(client=client, codec=codec, ids=harness_ids, tokens=harness_tokens)

    user_store.close()
    task_store.close()
