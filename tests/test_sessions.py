"""Unit tests for auth/sessions.py -- the durable session store.

Covers:
- create() / resolve() round trip returns the user snapshot
- resolve() is soft: unknown, empty and expired ids return None
- destroy() is idempotent
- the raw session id is never stored
- sessions survive a new store instance on the same database (restart)
- the snapshot is a copy: deleting the user does not change the session
- the in-memory store stays consistent under concurrent use
- unreadable rows are dropped instead of failing every request
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

from sqlalchemy import text

from auth import sessions as sessions_module
from auth.models import Role, SessionUser
from auth.sessions import SessionStore

_SECRET = "s" * 40


def _snapshot(user_id: int = 7, role: Role = Role.teacher) -> SessionUser:
    return SessionUser(id=user_id, username="alice", role=role, full_name="Alice Teacher")


def _store(db_url: str = "sqlite:///:memory:", lifetime: int = 3600) -> SessionStore:
    return SessionStore(db_url, lifetime_seconds=lifetime, secret_key=_SECRET)


class TestSessionLifecycle:
    def test_create_then_resolve(self) -> None:
        store = _store()
        sid = store.create(_snapshot())
        record = store.resolve(sid)
        assert record is not None
        assert record.session_id == sid
        assert record.user == _snapshot()

    def test_ids_are_unique(self) -> None:
        store = _store()
        assert store.create(_snapshot()) != store.create(_snapshot())

    def test_resolve_unknown_returns_none(self) -> None:
        assert _store().resolve("no-such-session") is None

    def test_resolve_empty_returns_none(self) -> None:
        store = _store()
        assert store.resolve(None) is None
        assert store.resolve("") is None

    def test_destroy_is_idempotent(self) -> None:
        store = _store()
        sid = store.create(_snapshot())
        store.destroy(sid)
        store.destroy(sid)
        store.destroy("never-existed")
        assert store.resolve(sid) is None

    def test_one_user_many_sessions(self) -> None:
        store = _store()
        first = store.create(_snapshot())
        second = store.create(_snapshot())
        store.destroy(first)
        assert store.resolve(first) is None
        assert store.resolve(second) is not None


class TestExpiry:
    def test_default_lifetime_is_seven_days(self) -> None:
        store = SessionStore("sqlite:///:memory:", secret_key=_SECRET)
        assert store.lifetime == timedelta(days=7)

    def test_expired_session_resolves_to_none(self, monkeypatch) -> None:
        store = _store(lifetime=60)
        sid = store.create(_snapshot())
        later = datetime.now(timezone.utc) + timedelta(seconds=61)
        monkeypatch.setattr(sessions_module, "_now", lambda: later)
        assert store.resolve(sid) is None

    def test_expired_session_is_removed(self, monkeypatch) -> None:
        store = _store(lifetime=60)
        sid = store.create(_snapshot())
        later = datetime.now(timezone.utc) + timedelta(seconds=61)
        monkeypatch.setattr(sessions_module, "_now", lambda: later)
        store.resolve(sid)
        monkeypatch.undo()
        assert store.resolve(sid) is None

    def test_purge_expired_counts_rows(self, monkeypatch) -> None:
        store = _store(lifetime=60)
        store.create(_snapshot())
        store.create(_snapshot())
        assert store.purge_expired() == 0
        later = datetime.now(timezone.utc) + timedelta(seconds=61)
        monkeypatch.setattr(sessions_module, "_now", lambda: later)
        assert store.purge_expired() == 2


class TestStorage:
    def test_raw_id_is_not_persisted(self) -> None:
        store = _store()
        sid = store.create(_snapshot())
        with store.engine.connect() as conn:
            stored = [row[0] for row in conn.execute(text("SELECT sid_hash FROM sessions"))]
        assert stored and sid not in stored

    def test_sessions_survive_restart(self, tmp_path) -> None:
        url = f"sqlite:///{tmp_path / 'sessions.db'}"
        first = _store(url)
        sid = first.create(_snapshot())
        first.close()

        second = _store(url)
        record = second.resolve(sid)
        second.close()
        assert record is not None
        assert record.user.id == 7

    def test_different_secret_key_cannot_resolve(self, tmp_path) -> None:
        url = f"sqlite:///{tmp_path / 'sessions.db'}"
        first = _store(url)
        sid = first.create(_snapshot())
        first.close()

        other = SessionStore(url, lifetime_seconds=3600, secret_key="k" * 40)
        assert other.resolve(sid) is None
        other.close()


class TestSnapshot:
    def test_snapshot_outlives_user_deletion(self, stores, accounts) -> None:
        """The session keeps the login-time copy; it is not re-read from the users table."""
        alice = accounts["alice"]
        sid = stores.sessions.create(alice.user.snapshot())
        stores.users.delete(alice.id, acting_user_id=accounts["root"].id)
        record = stores.sessions.resolve(sid)
        assert record is not None
        assert record.user.username == "alice"
        assert record.user.role is Role.teacher


class TestConcurrency:
    def test_in_memory_store_survives_overlapping_requests(self) -> None:
        """Many threads creating, resolving and destroying sessions on one in-memory store."""
        store = _store()

        def cycle(worker: int) -> None:
            for _ in range(100):
                sid = store.create(_snapshot(user_id=worker))
                record = store.resolve(sid)
                assert record is not None
                assert record.user.id == worker
                store.destroy(sid)
                assert store.resolve(sid) is None

        with ThreadPoolExecutor(max_workers=8) as pool:
            futures = [pool.submit(cycle, worker) for worker in range(8)]
            for future in futures:
                future.result()
        store.close()


class TestCorruptRecords:
    def test_unreadable_expiry_is_discarded(self) -> None:
        store = _store()
        sid = store.create(_snapshot())
        with store.engine.begin() as conn:
            conn.execute(text("UPDATE sessions SET expires_at = 'not-a-date'"))
        assert store.resolve(sid) is None
        with store.engine.connect() as conn:
            remaining = conn.execute(text("SELECT COUNT(*) FROM sessions")).scalar()
        assert remaining == 0

    def test_unreadable_snapshot_is_discarded(self) -> None:
        store = _store()
        sid = store.create(_snapshot())
        with store.engine.begin() as conn:
            conn.execute(text("UPDATE sessions SET user = '{not json'"))
        assert store.resolve(sid) is None
