"""
web/app.py -- FastAPI application for the notice board.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. log_requests       -- method, path, status, latency, client
  2. SlowAPIMiddleware  -- enforces the login rate limit from web.limiter
  3. attach_session     -- resolves the session cookie into request.state.session

Lifespan builds the three stores (users, notices, sessions), seeds the first
admin when configured, and runs the expired-session sweep. Shutdown closes
them in reverse.

Exception handlers keep the failure surface to redirects: an AccessDenied from
a role guard goes back to the landing page, a tripped rate limit or a bad form
goes back with an ?error= code, and anything unexpected is logged and answered
with a bare 500.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse, RedirectResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.concurrency import run_in_threadpool

from auth.dependencies import resolve_request_session
from auth.guard import AccessDenied
from auth.models import Role
from auth.sessions import SESSION_COOKIE, SessionStore, clear_session_cookie
from auth.store import DuplicateUsername, UserStore
from board.store import NoticeStore
from core.config import get_settings
from web.limiter import limiter

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("noticeboard.web")

_PURGE_INTERVAL_SECONDS = 60 * 60


def seed_initial_admin(user_store: UserStore) -> None:
    """Create the configured first admin if the user table is empty."""
    settings = get_settings()
    if not (settings.initial_admin_username and settings.initial_admin_password):
        return
    if user_store.has_users():
        return
    try:
        user_store.create(
            settings.initial_admin_username,
            settings.initial_admin_password,
            Role.admin,
            "Administrator",
        )
    except DuplicateUsername:
        # Another worker seeded it first.
        return
    logger.info("Seeded initial admin account %r", settings.initial_admin_username)


async def _purge_loop(app: FastAPI) -> None:
    """Delete expired sessions once an hour until cancelled at shutdown."""
    while True:
        await asyncio.sleep(_PURGE_INTERVAL_SECONDS)
        removed = await run_in_threadpool(app.state.session_store.purge_expired)
        if removed:
            logger.info("Purged %d expired sessions", removed)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    logger.info("Notice board starting up")
    app.state.user_store = UserStore()
    app.state.notice_store = NoticeStore()
    app.state.session_store = SessionStore()
    logger.info(
        "Stores initialized (persistent_sessions=%s)",
        settings.persistent_sessions,
    )
    seed_initial_admin(app.state.user_store)
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    app.state.session_store.close()
    app.state.notice_store.close()
    app.state.user_store.close()
    logger.info("Notice board shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Notice Board",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Starlette runs the most recently added middleware first. attach_session is
# registered first so it sits innermost, next to the routes.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def attach_session(request: Request, call_next):
    """Resolve the session cookie once per request.

    The result (SessionRecord or None) goes on request.state.session for the
    guards in auth/dependencies.py. A cookie that no longer resolves is
    deleted unless the handler is issuing a fresh one (login).
    """
    session = await run_in_threadpool(resolve_request_session, request)
    request.state.session = session
    response = await call_next(request)
    if session is None and SESSION_COOKIE in request.cookies:
        issued = any(h.startswith(f"{SESSION_COOKIE}=") for h in response.headers.getlist("set-cookie"))
        if not issued:
            clear_session_cookie(response)
    return response


app.add_middleware(SlowAPIMiddleware)
# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


@app.exception_handler(AccessDenied)
async def access_denied_handler(request: Request, exc: AccessDenied) -> RedirectResponse:
    """Unauthorized requests go back to the landing page, with no error code."""
    logger.debug("Denied %s %s: %s", request.method, request.url.path, exc)
    return RedirectResponse("/", status_code=302)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> RedirectResponse:
    logger.warning("Login rate limit exceeded for %s", request.client.host if request.client else "unknown")
    return RedirectResponse("/?error=too-many-requests", status_code=302)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> RedirectResponse:
    """A form field with the wrong type (e.g. a non-numeric id) is a bad request, not a crash."""
    logger.warning("Rejected malformed form on %s %s: %s", request.method, request.url.path, exc.errors())
    return RedirectResponse("/?error=invalid-request", status_code=302)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> PlainTextResponse:
    """Catch-all for unexpected server errors.

    The exception goes to the log only. The client gets a generic body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return PlainTextResponse("Something broke!", status_code=500)
