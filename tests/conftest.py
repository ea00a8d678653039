"""
tests/conftest.py -- Shared test fixtures for AuthGate tests.

This module provides:
  - store: in-memory UserStore seeded with roles and three users
  - make_auth: factory for request-scoped Authenticators over that store
  - api_client: TestClient with a patched lifespan and an isolated DB

PASSWORD and the browser User-Agent strings live in helpers.py.

Seeded users (password "correct horse" for all):
  alice -- roles: login, editor
  bob   -- roles: login, admin, editor
  carol -- roles: editor (no "login" role, so password login is refused)

Design: API tests use a named shared-memory SQLite URI (not plain :memory:)
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

DEBUG and ALLOWED_HOSTS must be set before any app import so get_settings()
auto-generates SECRET_KEY and TrustedHostMiddleware accepts "testserver".
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager

# CRITICAL: set before any auth/core/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from auth.models import Role, User
from auth.service import Authenticator
from auth.session import CookieJar, SessionStore
from auth.store import UserStore
from auth.tokens import hash_password
from helpers import FIREFOX, PASSWORD

# One hash for every seeded user keeps bcrypt cost out of each fixture.
_PASSWORD_HASH = hash_password(PASSWORD)


def _seed(store: UserStore) -> None:
    roles = {name: store.create_role(Role(name=name)) for name in ("login", "admin", "editor")}
    memberships = {
        "alice": ("login", "editor"),
        "bob": ("login", "admin", "editor"),
        "carol": ("editor",),
    }
    for username, role_names in memberships.items():
        uid = store.create_user(
            User(username=username, email=f"{username}@example.com", hashed_password=_PASSWORD_HASH)
        )
        for name in role_names:
            store.add_role(uid, roles[name])


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    _seed(s)
    yield s
    s.close()


@pytest.fixture
def make_auth(store: UserStore) -> Callable[..., Authenticator]:
    """Return a factory that builds one Authenticator per simulated request.

    Pass the previous request's cookies (jar.as_dict()) and session dict to
    carry browser state across requests.
    """

    def factory(
        user_agent: str = FIREFOX,
        cookies: dict | None = None,
        session: dict | None = None,
        lifetime: int = 3600,
    ) -> Authenticator:
        return Authenticator(
            store=store,
            session=SessionStore(session if session is not None else {}),
            cookies=CookieJar(cookies or {}),
            user_agent=user_agent,
            lifetime=lifetime,
        )

    return factory


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore):
    """Return a lifespan that wires the test store into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def api_store(request) -> Generator[UserStore, None, None]:
    url = f"sqlite:///file:test_auth_{request.module.__name__}?mode=memory&cache=shared&uri=true"
    s = UserStore(db_url=url)
    _seed(s)
    yield s
    s.close()


@pytest.fixture(scope="module")
def api_app(api_store: UserStore):
    from api.main import app

    app.router.lifespan_context = _patch_lifespan(api_store)
    return app


@pytest.fixture
def api_client(api_app) -> Generator[TestClient, None, None]:
    """A fresh browser per test: empty cookie jar, default Firefox User-Agent.

    The rate limiter is reset so repeated logins across tests do not hit 429.
    """
    from api.limiter import limiter

    limiter.reset()
    with TestClient(api_app, headers={"User-Agent": FIREFOX}, raise_server_exceptions=True) as client:
        yield client
