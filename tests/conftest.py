"""
tests/conftest.py -- Shared test fixtures for the notice board tests.

This module provides:
  - stores: fresh in-memory user, notice and session stores per test
  - accounts: a seeded admin, two teachers and a student (plaintext passwords
    kept alongside so tests can sign in)
  - client: TestClient with follow_redirects=False, wired to the test stores
  - login(): sign a TestClient in through the real login route

Design: sqlite:///:memory: URLs get a StaticPool in core/database.py, so
every connection -- including the ones TestClient makes from its worker
thread -- sees the same database. Those engines share one connection, so the
stores serialize access to it (core/database.py connection_guard).

DEBUG, LOGIN_RATE_LIMIT and PERSISTENT_SESSIONS must be set before any
project import: get_settings() is cached on first use. The client fixture
clears the rate limiter's counters so login attempts never carry over
between tests.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("PERSISTENT_SESSIONS", "false")

import pytest
from fastapi.testclient import TestClient

from asgi import app
from auth.models import Role, User
from auth.sessions import SessionStore
from auth.store import UserStore
from board.store import NoticeStore
from web.limiter import limiter

MEMORY_URL = "sqlite:///:memory:"


@dataclass
class Stores:
    users: UserStore
    notices: NoticeStore
    sessions: SessionStore


@dataclass
class Account:
    user: User
    password: str

    @property
    def id(self) -> int:
        return self.user.id

    @property
    def username(self) -> str:
        return self.user.username


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def stores() -> Generator[Stores, None, None]:
    s = Stores(
        users=UserStore(MEMORY_URL),
        notices=NoticeStore(MEMORY_URL),
        sessions=SessionStore(MEMORY_URL),
    )
    yield s
    s.sessions.close()
    s.notices.close()
    s.users.close()


@pytest.fixture
def accounts(stores: Stores) -> dict[str, Account]:
    """Seed one account per role plus a second teacher.

    Created in this order on an empty table, so root is id 1.
    """
    seed = [
        ("root", "rootpass123", Role.admin, "Root Admin"),
        ("alice", "alicepass123", Role.teacher, "Alice Teacher"),
        ("bob", "bobpass123", Role.teacher, "Bob Teacher"),
        ("sam", "sampass123", Role.student, "Sam Student"),
    ]
    return {
        username: Account(stores.users.create(username, password, role, full_name), password)
        for username, password, role, full_name in seed
    }


# ---------------------------------------------------------------------------
# App fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(stores: Stores):
    """Return a lifespan that wires the test stores into app.state.

    purge_task is a long-sleeping real task so shutdown's .cancel() works.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = stores.users
        app.state.notice_store = stores.notices
        app.state.session_store = stores.sessions
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture
def client(stores: Stores) -> Generator[TestClient, None, None]:
    """TestClient that does not follow redirects.

    Web route tests assert on redirect Location headers, which disappear once
    the client follows them.
    """
    app.router.lifespan_context = _patch_lifespan(stores)
    limiter.reset()
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as c:
        yield c


def login(client: TestClient, role: Role, account: Account):
    """Sign client in as account through POST /<role>/login. Returns the response."""
    client.cookies.clear()
    return client.post(
        f"/{role.value}/login",
        data={"username": account.username, "password": account.password},
    )
