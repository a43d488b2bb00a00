"""
core/database.py -- SQLAlchemy engine construction shared by every store.

All three durable stores (users, notices, sessions) build their engine here so
SQLite-specific connection handling lives in one place:

  - check_same_thread=False: FastAPI runs sync handlers in a thread pool.
  - WAL journal mode, set per-connection because SQLite PRAGMAs are not
    inherited by new pool connections.
  - sqlite:///:memory: uses a StaticPool so every connection sees the same
    in-memory database (otherwise each pool connection gets a blank schema).
    That one sqlite3 connection is shared by every thread, so stores wrap
    each unit of work in connection_guard(engine) to run them one at a time.
  - File-backed SQLite URLs get their parent directory created on demand.

Layer rule: core/ is the kernel. No imports from auth/, board/ or web/.
"""

from __future__ import annotations

import threading
from contextlib import AbstractContextManager, nullcontext
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import StaticPool

MEMORY_URL = "sqlite:///:memory:"


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str) -> Engine:
    """Return an Engine for db_url with the SQLite adjustments applied."""
    if not db_url.startswith("sqlite"):
        return create_engine(db_url)

    url = make_url(db_url)
    connect_args: dict = {"check_same_thread": False}
    if url.database in (None, "", ":memory:"):
        return create_engine(db_url, connect_args=connect_args, poolclass=StaticPool)

    # Named shared-memory URIs (file:name?mode=memory) have no directory to create.
    if not url.database.startswith("file:"):
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(db_url, connect_args=connect_args)
    event.listen(engine, "connect", _set_wal_mode)
    return engine


def connection_guard(engine: Engine) -> AbstractContextManager:
    """Return the lock a store holds around each transaction on engine.

    A StaticPool hands the same sqlite3 connection to every thread, and
    interleaved transactions on it commit or roll back each other's work.
    Pooled engines give each thread its own connection and need no lock.
    """
    if isinstance(engine.pool, StaticPool):
        return threading.RLock()
    return nullcontext()
