"""
tests/conftest.py -- Shared test fixtures for HomeInv integration tests.

This module provides:
  - make_settings(): a Settings instance with a fixed secret and cheap bcrypt
  - FakeDirectory: stand-in for DirectoryAuthenticator with scripted answers
  - _patch_lifespan(): wires test services into app.state, bypassing real startup
  - api_client: TestClient plus seeded users and ready-made bearer tokens
  - drain_audit(): waits for the audit worker so tests can read Transactions

Design: the API fixture uses a SQLite file in a temp dir rather than a
shared-memory URI. The audit worker writes Transactions from its own thread
while route handlers write from the threadpool; a file database lets the
second writer wait on the busy timeout instead of failing with "table is
locked". Store-level unit tests still use named shared-memory URIs.

The DEBUG env var must be set before any api/core import so get_settings()
auto-generates JWT_SECRET in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import time
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from typing import NamedTuple

# CRITICAL: Set DEBUG before any api/core import so get_settings() can
# auto-generate JWT_SECRET in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app, init_state
from auth.models import AuthMode, Identity, User
from auth.passwords import hash_password
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import Settings
from inventory.store import InventoryStore

TEST_SECRET = "test-signing-secret-0123456789abcdef"

ADMIN_PASSWORD = "adminpass123"
EDITOR_PASSWORD = "editorpass123"
VIEWER_PASSWORD = "viewerpass123"
DIRECTORY_PASSWORD = "dirpass123"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_settings(database_url: str = "sqlite://", **overrides) -> Settings:
    """Settings for tests: fixed secret, minimum bcrypt cost, short LDAP timeout."""
    values = {
        "jwt_secret": TEST_SECRET,
        "database_url": database_url,
        "bcrypt_rounds": 4,
        "ldap_timeout_seconds": 0.5,
    }
    values.update(overrides)
    return Settings(**values)


def shared_memory_url(name: str) -> str:
    """Named shared-memory SQLite URI, unique per call."""
    return f"sqlite:///file:{name}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


class FakeDirectory:
    """Scripted replacement for DirectoryAuthenticator.

    accounts maps username -> password. Set `error` to make bind() raise, or
    `delay` to make it block, the way a hung directory server would.
    """

    configured = True

    def __init__(self, accounts: dict[str, str] | None = None) -> None:
        self.accounts = dict(accounts or {})
        self.error: Exception | None = None
        self.delay = 0.0
        self.calls: list[str] = []

    def bind(self, username: str, password: str) -> bool:
        self.calls.append(username)
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return bool(password) and self.accounts.get(username) == password


class ApiContext(NamedTuple):
    client: TestClient
    store: InventoryStore
    directory: FakeDirectory
    tokens: TokenService
    admin_token: str
    editor_token: str
    viewer_token: str
    admin_id: str
    viewer_id: str


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def drain_audit(client: TestClient) -> None:
    """Block until every queued audit entry has been written or logged."""
    client.portal.call(client.app.state.audit.drain)


def _patch_lifespan(settings: Settings, store: InventoryStore, directory: FakeDirectory):
    """Return an async context manager that replaces the real lifespan.

    Uses the same init_state() as production so the wiring under test is the
    real wiring; only the store, settings, and directory are swapped.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        init_state(app, settings, store, directory=directory)
        await app.state.audit.start()
        yield
        await app.state.audit.stop()

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(tmp_path_factory) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext for API integration tests.

    Seeds one local admin, editor and viewer plus one directory user
    ("diruser", accepted by the fake directory) before the client starts.
    """
    db_path = tmp_path_factory.mktemp("db") / "homeinv.db"
    settings = make_settings(f"sqlite:///{db_path}")
    store = InventoryStore(settings.database_url)
    users = UserStore(store)

    admin_id = users.create_user(
        User(username="testadmin", role="admin", password_hash=hash_password(ADMIN_PASSWORD, rounds=4))
    )
    users.create_user(User(username="testeditor", role="editor", password_hash=hash_password(EDITOR_PASSWORD, rounds=4)))
    viewer_id = users.create_user(
        User(username="testviewer", role="viewer", password_hash=hash_password(VIEWER_PASSWORD, rounds=4))
    )
    users.create_user(User(username="diruser", role="viewer", auth_mode=AuthMode.DIRECTORY))

    directory = FakeDirectory({"diruser": DIRECTORY_PASSWORD})
    tokens = TokenService(settings.jwt_secret, settings.token_expiry_seconds)

    app.router.lifespan_context = _patch_lifespan(settings, store, directory)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(
            client=client,
            store=store,
            directory=directory,
            tokens=tokens,
            admin_token=tokens.issue(Identity("testadmin", "admin")),
            editor_token=tokens.issue(Identity("testeditor", "editor")),
            viewer_token=tokens.issue(Identity("testviewer", "viewer")),
            admin_id=admin_id,
            viewer_id=viewer_id,
        )

    store.close()


@pytest.fixture(autouse=True)
def _reset_login_throttle():
    """Every test starts with an empty login attempt window."""
    throttle = getattr(app.state, "login_throttle", None)
    if throttle is not None:
        throttle.reset()
    yield
