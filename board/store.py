"""
board/store.py -- SQLAlchemy-backed persistence layer for notices.

Uses SQLAlchemy Core (not ORM) so the dataclasses in board/models.py remain the
authoritative domain representation.

Pattern: Repository + Data Mapper. NoticeStore is the repository;
_row_to_notice is the mapper. Route handlers never touch SQL directly.

Ownership scoping:
  update() and delete() take the acting teacher's id and match
  `id = :notice_id AND posted_by = :owner_id`. No match is not an error: it
  comes back as MutationResult.NOT_FOUND_OR_NOT_OWNED. The admin path uses
  update_any() / delete_any(), which match on id alone. Keeping both paths here
  means a route cannot forget the owner filter.

Ordering: newest first by (created_at DESC, id DESC). create() never stamps a
notice earlier than the newest existing one, so created_at does not decrease
with insertion order even if the wall clock steps back.

Every mutation is a single statement in its own transaction; concurrent edits
of one notice are last-writer-wins.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = NoticeStore()
    notice = store.create("Exam Friday", "Room 4", owner_id=10)
    store.list_by_owner(10)
    store.delete(notice.id, owner_id=10)
    store.close()
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, Column, Integer, MetaData, String, Table, Text, func, literal, select
from sqlalchemy.engine import Engine

from board.models import MutationResult, Notice
from core.config import get_settings
from core.database import connection_guard, make_engine

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_notices = Table(
    "notices",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(255), nullable=False),
    Column("content", Text, nullable=False),
    Column("posted_by", Integer, nullable=False, index=True),  # users.id, not enforced: may dangle
    Column("is_important", Boolean, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)


class InvalidNotice(ValueError):
    """Title or content is empty."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _clean(title: str, content: str) -> tuple[str, str]:
    title = (title or "").strip()
    content = (content or "").strip()
    if not title or not content:
        raise InvalidNotice("title and content are required")
    return title, content


def _result(rowcount: int) -> MutationResult:
    return MutationResult.APPLIED if rowcount > 0 else MutationResult.NOT_FOUND_OR_NOT_OWNED


_NEWEST_FIRST = (_notices.c.created_at.desc(), _notices.c.id.desc())


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class NoticeStore:
    def __init__(self, db_url: Optional[str] = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        self._guard = connection_guard(self.engine)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_all(self, limit: Optional[int] = None) -> list[Notice]:
        """Return every notice, newest first. limit caps the count when given."""
        query = _notices.select().order_by(*_NEWEST_FIRST)
        if limit is not None:
            query = query.limit(limit)
        with self._guard, self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_notice(r) for r in rows]

    def list_by_owner(self, user_id: int, limit: Optional[int] = None) -> list[Notice]:
        """Return the notices posted by user_id, newest first."""
        query = _notices.select().where(_notices.c.posted_by == user_id).order_by(*_NEWEST_FIRST)
        if limit is not None:
            query = query.limit(limit)
        with self._guard, self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_notice(r) for r in rows]

    def get(self, notice_id: int) -> Optional[Notice]:
        with self._guard, self.engine.connect() as conn:
            row = conn.execute(_notices.select().where(_notices.c.id == notice_id)).fetchone()
        return _row_to_notice(row) if row is not None else None

    def get_owned(self, notice_id: int, owner_id: int) -> Optional[Notice]:
        """Return the notice only if owner_id posted it. Feeds the edit form."""
        with self._guard, self.engine.connect() as conn:
            row = conn.execute(
                _notices.select().where((_notices.c.id == notice_id) & (_notices.c.posted_by == owner_id))
            ).fetchone()
        return _row_to_notice(row) if row is not None else None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, title: str, content: str, owner_id: int, is_important: bool = False) -> Notice:
        """Insert a notice owned by owner_id and return it.

        Raises InvalidNotice if title or content is blank.
        """
        title, content = _clean(title, content)
        now = _now_iso()
        # Read the newest stamp inside the INSERT itself: a separate SELECT
        # would let two writers both see the same max.
        latest = (
            select(func.coalesce(func.max(_notices.c.created_at), literal(now))).correlate(None).scalar_subquery()
        )
        with self._guard, self.engine.begin() as conn:
            result = conn.execute(
                _notices.insert().values(
                    title=title,
                    content=content,
                    posted_by=owner_id,
                    is_important=bool(is_important),
                    created_at=func.max(literal(now), latest),
                )
            )
            notice_id = result.inserted_primary_key[0]
            created_at = conn.execute(select(_notices.c.created_at).where(_notices.c.id == notice_id)).scalar_one()
        return Notice(
            id=notice_id,
            title=title,
            content=content,
            posted_by=owner_id,
            is_important=bool(is_important),
            created_at=created_at,
        )

    def update(
        self, notice_id: int, owner_id: int, title: str, content: str, is_important: bool = False
    ) -> MutationResult:
        """Rewrite a notice owner_id posted. Other owners' notices are left alone."""
        title, content = _clean(title, content)
        where = (_notices.c.id == notice_id) & (_notices.c.posted_by == owner_id)
        return self._update(where, title, content, is_important)

    def update_any(self, notice_id: int, title: str, content: str, is_important: bool = False) -> MutationResult:
        """Admin path: rewrite a notice regardless of owner."""
        title, content = _clean(title, content)
        return self._update(_notices.c.id == notice_id, title, content, is_important)

    def delete(self, notice_id: int, owner_id: int) -> MutationResult:
        """Delete a notice owner_id posted. Other owners' notices are left alone."""
        where = (_notices.c.id == notice_id) & (_notices.c.posted_by == owner_id)
        return self._delete(where)

    def delete_any(self, notice_id: int) -> MutationResult:
        """Admin path: delete a notice regardless of owner."""
        return self._delete(_notices.c.id == notice_id)

    def _update(self, where, title: str, content: str, is_important: bool) -> MutationResult:
        with self._guard, self.engine.begin() as conn:
            result = conn.execute(
                _notices.update().where(where).values(title=title, content=content, is_important=bool(is_important))
            )
        return _result(result.rowcount)

    def _delete(self, where) -> MutationResult:
        with self._guard, self.engine.begin() as conn:
            result = conn.execute(_notices.delete().where(where))
        return _result(result.rowcount)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_notice(row) -> Notice:
    return Notice(
        id=row.id,
        title=row.title,
        content=row.content,
        posted_by=row.posted_by,
        is_important=bool(row.is_important),
        created_at=row.created_at,
    )
