"""
auth/dependencies.py -- FastAPI Depends() helpers for session authentication.

The session middleware (web/app.py) resolves the session cookie once per
request and leaves the result on request.state.session. Everything here reads
that value; nothing re-queries the store.

try_get_session() is the soft variant (returns None).
require_authenticated() / require_role(role) raise AccessDenied, which the
application turns into a redirect to the landing page. There is no 401/403
surface: an unauthorized request is simply sent back to sign in.

Layer rule: may import from fastapi (Request) because this module is part of
the FastAPI dependency injection system. No imports from board/ or web/.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Request

from auth.guard import AccessDenied, has_role, is_authenticated
from auth.models import Role, SessionRecord
from auth.sessions import SESSION_COOKIE, SessionStore


def resolve_request_session(request: Request) -> SessionRecord | None:
    """Look up the session named by the request's cookie. Used by the middleware."""
    store: SessionStore = request.app.state.session_store
    return store.resolve(request.cookies.get(SESSION_COOKIE))


def try_get_session(request: Request) -> SessionRecord | None:
    """Return the session resolved for this request, or None."""
    return getattr(request.state, "session", None)


def require_authenticated(request: Request) -> SessionRecord:
    """Require any signed-in user.

    Use as a FastAPI dependency:
        @router.post("/logout")
        def route(session: SessionRecord = Depends(require_authenticated)): ...
    """
    session = try_get_session(request)
    if not is_authenticated(session):
        raise AccessDenied()
    return session


def require_role(role: Role) -> Callable[[Request], SessionRecord]:
    """Build a dependency that admits only sessions holding role.

    Use as a FastAPI dependency:
        @router.get("/admin")
        def route(session: SessionRecord = Depends(require_role(Role.admin))): ...
    """

    def dependency(request: Request) -> SessionRecord:
        session = try_get_session(request)
        if not has_role(session, role):
            raise AccessDenied(role)
        return session

    dependency.__name__ = f"require_{role.value}"
    return dependency
