"""
auth/sessions.py -- Durable server-side session store and cookie helpers.

A session ties an opaque client-held id to a SessionUser snapshot and an
expiry. The client only ever holds the id; everything else lives here.

Security design:
  - Ids come from secrets.token_urlsafe(32): 256 bits of entropy.
  - The table stores HMAC-SHA256(SECRET_KEY, id), never the raw id, so a copy
    of the database does not hand out live sessions. The hash is
    deterministic, so resolve() is a primary-key lookup.
  - Lifetime is fixed at creation (default 7 days). resolve() does not extend
    it.
  - An expired row is treated exactly like a missing one and removed on sight;
    purge_expired() sweeps the rest.

Durability is chosen in config: PERSISTENT_SESSIONS=false swaps the database
for a process-local in-memory one.

Layer rule: no imports from board/ or web/.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy import Column, MetaData, String, Table, Text
from sqlalchemy.engine import Engine

from auth.models import SessionRecord, SessionUser
from core.config import get_settings
from core.database import MEMORY_URL, connection_guard, make_engine

logger = logging.getLogger("noticeboard.auth.sessions")

SESSION_COOKIE = "session_id"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_sessions = Table(
    "sessions",
    metadata,
    Column("sid_hash", String(64), primary_key=True),  # HMAC-SHA256 hex of the cookie value
    Column("user", Text, nullable=False),  # JSON SessionUser snapshot
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False),
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore:
    """Repository for session records.

    Usage:
        store = SessionStore()
        sid = store.create(user.snapshot())
        record = store.resolve(sid)     # SessionRecord or None
        store.destroy(sid)
    """

    def __init__(
        self,
        db_url: str | None = None,
        lifetime_seconds: int | None = None,
        secret_key: str | None = None,
    ) -> None:
        settings = get_settings()
        if db_url is None:
            db_url = settings.session_db_url if settings.persistent_sessions else MEMORY_URL
        self.lifetime = timedelta(seconds=lifetime_seconds or settings.session_lifetime_seconds)
        self._key = (secret_key or settings.secret_key).encode("utf-8")
        self.engine: Engine = make_engine(db_url)
        self._guard = connection_guard(self.engine)
        metadata.create_all(self.engine)

    def _hash(self, session_id: str) -> str:
        return hmac.new(self._key, session_id.encode("utf-8"), hashlib.sha256).hexdigest()

    def create(self, user: SessionUser) -> str:
        """Persist a new session for user and return its id."""
        session_id = secrets.token_urlsafe(32)
        now = _now()
        with self._guard, self.engine.begin() as conn:
            conn.execute(
                _sessions.insert().values(
                    sid_hash=self._hash(session_id),
                    user=json.dumps(user.to_dict()),
                    created_at=now.isoformat(timespec="microseconds"),
                    expires_at=(now + self.lifetime).isoformat(timespec="microseconds"),
                )
            )
        return session_id

    def resolve(self, session_id: str | None) -> SessionRecord | None:
        """Return the live session for session_id, or None if absent or expired."""
        if not session_id:
            return None
        sid_hash = self._hash(session_id)
        with self._guard, self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.sid_hash == sid_hash)).fetchone()
        if row is None:
            return None
        try:
            expires_at = datetime.fromisoformat(row.expires_at)
            user = SessionUser.from_dict(json.loads(row.user))
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding unreadable session record")
            self._delete(sid_hash)
            return None
        if expires_at <= _now():
            self._delete(sid_hash)
            return None
        return SessionRecord(session_id=session_id, user=user, expires_at=row.expires_at)

    def destroy(self, session_id: str | None) -> None:
        """Remove the session. Destroying an absent session is not an error."""
        if session_id:
            self._delete(self._hash(session_id))

    def purge_expired(self) -> int:
        """Delete every expired session. Returns number of rows removed."""
        cutoff = _now().isoformat(timespec="microseconds")
        with self._guard, self.engine.begin() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= cutoff))
        return result.rowcount

    def _delete(self, sid_hash: str) -> None:
        with self._guard, self.engine.begin() as conn:
            conn.execute(_sessions.delete().where(_sessions.c.sid_hash == sid_hash))

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, session_id: str) -> None:
    """Write the session id as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie.
    samesite="lax": not sent on cross-site POSTs.
    secure: only over HTTPS when SECURE_COOKIES=true.
    max_age: the store's lifetime, counted from creation.
    """
    settings = get_settings()
    response.set_cookie(
        SESSION_COOKIE,
        value=session_id,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=settings.session_lifetime_seconds,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE)
