"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own the
domain shape; stores and routes do the work.

Layer rule: no imports from board/ or web/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """The closed set of roles. Every guard matches on these members."""

    student = "student"
    teacher = "teacher"
    admin = "admin"


@dataclass
class User:
    """A stored account.

    password_hash is an opaque bcrypt hash; the plaintext is never kept.
    role is fixed at creation -- there is no operation that changes it.
    """

    username: str
    role: Role
    full_name: str = ""
    password_hash: str = ""
    id: int | None = None
    created_at: str | None = None

    def snapshot(self) -> SessionUser:
        """Copy the fields a session carries. See SessionUser."""
        return SessionUser(id=self.id, username=self.username, role=self.role, full_name=self.full_name)


@dataclass(frozen=True)
class SessionUser:
    """The user as they were at login time.

    This is a copy, not a live reference: renaming or deleting the User row
    does not change an existing session until the user signs in again.
    """

    id: int
    username: str
    role: Role
    full_name: str = ""

    def to_dict(self) -> dict:
        return {"id": self.id, "username": self.username, "role": self.role.value, "full_name": self.full_name}

    @classmethod
    def from_dict(cls, data: dict) -> SessionUser:
        return cls(
            id=int(data["id"]),
            username=data["username"],
            role=Role(data["role"]),
            full_name=data.get("full_name") or "",
        )


@dataclass(frozen=True)
class SessionRecord:
    """A resolved, unexpired session. expires_at is an ISO 8601 UTC timestamp."""

    session_id: str
    user: SessionUser
    expires_at: str
