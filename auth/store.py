"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper (same as board/store.py).
UserStore is the repository; _row_to_user is the mapper. Route code never
touches SQL directly.

Invariants owned here rather than in the routes, so no caller can skip them:
  - Username uniqueness comes from the UNIQUE constraint. create() does not
    pre-check; the IntegrityError from a losing concurrent insert becomes
    DuplicateUsername.
  - delete() refuses to remove the acting user's own account before any SQL
    runs.

Notices owned by a deleted teacher are left in place (posted_by dangles).

Security: all queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from board/ or web/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.credentials import hash_password
from auth.models import Role, User
from core.config import get_settings
from core.database import connection_guard, make_engine

logger = logging.getLogger("noticeboard.auth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("role", String(20), nullable=False),
    Column("full_name", String(255), nullable=False, server_default=""),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class DuplicateUsername(Exception):
    """The username is already taken. The existing record is untouched."""

    def __init__(self, username: str):
        self.username = username
        super().__init__(f"Username {username!r} already exists")


class SelfDeleteRejected(Exception):
    """An admin tried to delete their own account. Nothing was changed."""

    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(f"User {user_id} cannot delete their own account")


class InvalidUser(ValueError):
    """Required user fields are missing or invalid."""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore()
        user = store.create("root", "secret", Role.admin, "Root Admin")
        store.get_by_username("root")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        self._guard = connection_guard(self.engine)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        """Return True if at least one user record exists."""
        with self._guard, self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def list_all(self) -> list[User]:
        """Return all users in insertion order."""
        with self._guard, self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    def list_by_role(self, role: Role) -> list[User]:
        """Return users holding role, in insertion order."""
        with self._guard, self.engine.connect() as conn:
            rows = conn.execute(_users.select().where(_users.c.role == role.value).order_by(_users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self._guard, self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self._guard, self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, username: str, password: str, role: Role, full_name: str = "") -> User:
        """Hash the password, insert the user and return the stored record.

        Raises InvalidUser for a blank username or password or an unknown role
        and DuplicateUsername if the username is taken.
        """
        username = (username or "").strip()
        if not username or not password:
            raise InvalidUser("username and password are required")
        try:
            role = Role(role)
        except ValueError as exc:
            raise InvalidUser(f"unknown role {role!r}") from exc
        full_name = (full_name or "").strip()
        password_hash = hash_password(password)
        created_at = _now_iso()
        try:
            with self._guard, self.engine.begin() as conn:
                result = conn.execute(
                    _users.insert().values(
                        username=username,
                        password_hash=password_hash,
                        role=role.value,
                        full_name=full_name,
                        created_at=created_at,
                    )
                )
        except IntegrityError as exc:
            raise DuplicateUsername(username) from exc
        user_id = result.inserted_primary_key[0]
        logger.info("Created %s account %r (id=%d)", role.value, username, user_id)
        return User(
            id=user_id,
            username=username,
            role=role,
            full_name=full_name,
            password_hash=password_hash,
            created_at=created_at,
        )

    def delete(self, user_id: int, acting_user_id: int) -> bool:
        """Permanently delete a user. Returns True if deleted, False if not found.

        Raises SelfDeleteRejected, without touching the table, when user_id is
        the acting user's own id.
        """
        if user_id == acting_user_id:
            raise SelfDeleteRejected(user_id)
        with self._guard, self.engine.begin() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        password_hash=row.password_hash,
        role=Role(row.role),
        full_name=row.full_name or "",
        created_at=row.created_at,
    )
