"""
auth/guard.py -- Authorization predicates over a resolved session.

Both checks are pure: they look only at the SessionRecord the session
middleware resolved for this request (None when there is none). They never
touch a store, so a session snapshot that has gone stale is judged as it was
at login.

Layer rule: no imports from board/ or web/.
"""

from __future__ import annotations

from auth.models import Role, SessionRecord


class AccessDenied(Exception):
    """The request may not reach this route. The web layer redirects to /."""

    def __init__(self, required: Role | None = None):
        self.required = required
        super().__init__(f"{required.value} role required" if required else "authentication required")


def is_authenticated(session: SessionRecord | None) -> bool:
    return session is not None


def has_role(session: SessionRecord | None, role: Role) -> bool:
    """True iff there is a session and its user holds exactly role.

    Roles are not ranked: an admin does not pass a teacher check.
    """
    if session is None:
        return False
    # Role(...) rejects anything outside the closed set with ValueError.
    return session.user.role is Role(role)
