"""
web/routes.py -- Jinja2 template routes for the notice board.

Handlers only orchestrate: a role guard (auth/dependencies.py) decides who
gets in, a repository (auth/store.py, board/store.py) applies the rules, and
the handler turns the outcome into a page or a redirect. Ownership and
self-delete checks live in the repositories, not here.

Failure convention: every failed action redirects with ?error=<code>. Codes
are mapped to messages through _ERROR_MESSAGES before reaching a template, so
the raw query value is never rendered. Storage errors are logged and reported
only as "server-error".

Routes:
  GET  /                           -- landing page, 5 latest notices
  GET  /student                    -- teacher list + all notices (student)
  POST /student/login              -- sign in as a student
  POST /teacher/login              -- sign in as a teacher
  POST /admin/login                -- sign in as an admin
  GET  /teacher                    -- dashboard, 3 latest own notices (teacher)
  GET  /teacher/notices            -- all own notices (teacher)
  GET  /teacher/post               -- post form (teacher)
  POST /teacher/post-notice        -- create notice (teacher)
  GET  /teacher/edit-notice/{id}   -- edit form for an owned notice (teacher)
  POST /teacher/update-notice      -- update owned notice (teacher)
  POST /teacher/delete-notice      -- delete owned notice (teacher)
  GET  /admin                      -- users + notices (admin)
  POST /admin/add-user             -- create user (admin)
  POST /admin/delete-user          -- delete user, never self (admin)
  POST /admin/delete-notice        -- delete any notice (admin)
  POST /logout                     -- end the session (any signed-in user)
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.exc import SQLAlchemyError

from auth.credentials import CryptoFailure, authenticate
from auth.dependencies import require_authenticated, require_role, try_get_session
from auth.models import Role, SessionRecord
from auth.sessions import SessionStore, clear_session_cookie, set_session_cookie
from auth.store import DuplicateUsername, InvalidUser, SelfDeleteRejected, UserStore
from board.models import MutationResult
from board.store import InvalidNotice, NoticeStore
from core.config import get_settings
from web.limiter import limiter

logger = logging.getLogger("noticeboard.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
router = APIRouter()

require_student = require_role(Role.student)
require_teacher = require_role(Role.teacher)
require_admin = require_role(Role.admin)

# Whitelist mapping for ?error= query params. Unknown codes render nothing.
_ERROR_MESSAGES: dict[str, str] = {
    "invalid-credentials": "Invalid username or password.",
    "server-error": "Something went wrong. Please try again.",
    "user-exists": "That username is already taken.",
    "cannot-delete-self": "You cannot delete your own account.",
    "missing-fields": "Please fill in all required fields.",
    "too-many-requests": "Too many sign-in attempts. Wait a minute and try again.",
    "invalid-request": "That request could not be understood.",
}

_HOME: dict[Role, str] = {
    Role.student: "/student",
    Role.teacher: "/teacher",
    Role.admin: "/admin",
}

_LANDING_LIMIT = 5
_DASHBOARD_LIMIT = 3


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _login_limit() -> str:
    """Login rate limit, read per request so a settings change applies without re-import."""
    return get_settings().login_rate_limit


def _redirect(path: str, error: Optional[str] = None) -> RedirectResponse:
    return RedirectResponse(f"{path}?error={error}" if error else path, status_code=302)


def _error_msg(request: Request) -> Optional[str]:
    return _ERROR_MESSAGES.get(request.query_params.get("error", ""))


def _users(request: Request) -> UserStore:
    return request.app.state.user_store


def _notices(request: Request) -> NoticeStore:
    return request.app.state.notice_store


def _author_names(user_store: UserStore) -> dict[int, str]:
    """Map user id -> display name. Deleted authors are simply absent."""
    return {u.id: u.full_name or u.username for u in user_store.list_all()}


def _render(request: Request, name: str, context: dict) -> HTMLResponse:
    context.setdefault("current_user", getattr(try_get_session(request), "user", None))
    context.setdefault("error_msg", _error_msg(request))
    return templates.TemplateResponse(request, name, context)


# ---------------------------------------------------------------------------
# GET / -- landing page
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def index(request: Request) -> HTMLResponse:
    try:
        notices = _notices(request).list_all(limit=_LANDING_LIMIT)
        authors = _author_names(_users(request))
    except SQLAlchemyError:
        logger.exception("Failed to load landing page notices")
        return PlainTextResponse("Server Error", status_code=500)
    return _render(request, "index.html", {"notices": notices, "authors": authors})


# ---------------------------------------------------------------------------
# Login -- one endpoint per role, one shared implementation
# ---------------------------------------------------------------------------


def _login(request: Request, role: Role, username: str, password: str) -> RedirectResponse:
    """Authenticate for role and start a session.

    Unknown user, wrong password and wrong role all produce the same
    invalid-credentials redirect.
    """
    user_store = _users(request)
    session_store: SessionStore = request.app.state.session_store
    try:
        user = authenticate(user_store, username, password, role)
        if user is None:
            return _redirect("/", "invalid-credentials")
        previous = try_get_session(request)
        if previous is not None:
            session_store.destroy(previous.session_id)
        session_id = session_store.create(user.snapshot())
    except (CryptoFailure, SQLAlchemyError):
        logger.exception("%s login failed for %r", role.value, username)
        return _redirect("/", "server-error")

    logger.info("%s %r signed in", role.value, user.username)
    resp = RedirectResponse(_HOME[role], status_code=302)
    set_session_cookie(resp, session_id)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/student/login")
@limiter.limit(_login_limit)
def student_login(request: Request, username: str = Form(""), password: str = Form("")) -> RedirectResponse:
    return _login(request, Role.student, username, password)


@router.post("/teacher/login")
@limiter.limit(_login_limit)
def teacher_login(request: Request, username: str = Form(""), password: str = Form("")) -> RedirectResponse:
    return _login(request, Role.teacher, username, password)


@router.post("/admin/login")
@limiter.limit(_login_limit)
def admin_login(request: Request, username: str = Form(""), password: str = Form("")) -> RedirectResponse:
    return _login(request, Role.admin, username, password)


# ---------------------------------------------------------------------------
# Student
# ---------------------------------------------------------------------------


@router.get("/student", response_class=HTMLResponse)
def student_home(request: Request, session: SessionRecord = Depends(require_student)) -> HTMLResponse:
    try:
        teachers = _users(request).list_by_role(Role.teacher)
        notices = _notices(request).list_all()
    except SQLAlchemyError:
        logger.exception("Failed to load student page")
        return _redirect("/", "server-error")
    authors = {t.id: t.full_name or t.username for t in teachers}
    return _render(
        request,
        "student.html",
        {"user": session.user, "teachers": teachers, "notices": notices, "authors": authors},
    )


# ---------------------------------------------------------------------------
# Teacher
# ---------------------------------------------------------------------------


def _teacher_page(request: Request, session: SessionRecord, active_tab: str, limit: Optional[int]) -> HTMLResponse:
    try:
        notices = _notices(request).list_by_owner(session.user.id, limit=limit)
    except SQLAlchemyError:
        logger.exception("Failed to load notices for teacher %d", session.user.id)
        return _redirect("/", "server-error")
    return _render(
        request,
        "teacher.html",
        {"user": session.user, "active_tab": active_tab, "notices": notices, "editing": False},
    )


@router.get("/teacher", response_class=HTMLResponse)
def teacher_dashboard(request: Request, session: SessionRecord = Depends(require_teacher)) -> HTMLResponse:
    return _teacher_page(request, session, "dashboard", _DASHBOARD_LIMIT)


@router.get("/teacher/notices", response_class=HTMLResponse)
def teacher_notices(request: Request, session: SessionRecord = Depends(require_teacher)) -> HTMLResponse:
    return _teacher_page(request, session, "notices", None)


@router.get("/teacher/post", response_class=HTMLResponse)
def teacher_post_form(request: Request, session: SessionRecord = Depends(require_teacher)) -> HTMLResponse:
    return _render(request, "teacher.html", {"user": session.user, "active_tab": "post", "editing": False})


@router.post("/teacher/post-notice")
def teacher_post_notice(
    request: Request,
    title: str = Form(""),
    content: str = Form(""),
    important: Optional[str] = Form(None),
    session: SessionRecord = Depends(require_teacher),
) -> RedirectResponse:
    try:
        notice = _notices(request).create(title, content, session.user.id, important == "on")
    except InvalidNotice:
        return _redirect("/teacher/post", "missing-fields")
    except SQLAlchemyError:
        logger.exception("Failed to create notice for teacher %d", session.user.id)
        return _redirect("/teacher/post", "server-error")
    logger.info("Teacher %d posted notice %d", session.user.id, notice.id)
    return _redirect("/teacher/notices")


@router.get("/teacher/edit-notice/{notice_id}", response_class=HTMLResponse)
def teacher_edit_form(
    request: Request, notice_id: int, session: SessionRecord = Depends(require_teacher)
) -> HTMLResponse:
    try:
        notice = _notices(request).get_owned(notice_id, session.user.id)
    except SQLAlchemyError:
        logger.exception("Failed to load notice %d for editing", notice_id)
        return _redirect("/teacher/notices", "server-error")
    if notice is None:
        return _redirect("/teacher/notices")
    return _render(
        request,
        "teacher.html",
        {"user": session.user, "active_tab": "post", "editing": True, "notice": notice},
    )


@router.post("/teacher/update-notice")
def teacher_update_notice(
    request: Request,
    notice_id: int = Form(...),
    title: str = Form(""),
    content: str = Form(""),
    important: Optional[str] = Form(None),
    session: SessionRecord = Depends(require_teacher),
) -> RedirectResponse:
    try:
        result = _notices(request).update(notice_id, session.user.id, title, content, important == "on")
    except InvalidNotice:
        return _redirect(f"/teacher/edit-notice/{notice_id}", "missing-fields")
    except SQLAlchemyError:
        logger.exception("Failed to update notice %d", notice_id)
        return _redirect(f"/teacher/edit-notice/{notice_id}", "server-error")
    if result is MutationResult.NOT_FOUND_OR_NOT_OWNED:
        # Redirected like a success; the attempt is only visible in the log.
        logger.warning("Teacher %d tried to update notice %d they do not own", session.user.id, notice_id)
    return _redirect("/teacher/notices")


@router.post("/teacher/delete-notice")
def teacher_delete_notice(
    request: Request,
    notice_id: int = Form(...),
    session: SessionRecord = Depends(require_teacher),
) -> RedirectResponse:
    try:
        result = _notices(request).delete(notice_id, session.user.id)
    except SQLAlchemyError:
        logger.exception("Failed to delete notice %d", notice_id)
        return _redirect("/teacher/notices", "server-error")
    if result is MutationResult.NOT_FOUND_OR_NOT_OWNED:
        logger.warning("Teacher %d tried to delete notice %d they do not own", session.user.id, notice_id)
    return _redirect("/teacher/notices")


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@router.get("/admin", response_class=HTMLResponse)
def admin_home(request: Request, session: SessionRecord = Depends(require_admin)) -> HTMLResponse:
    try:
        user_store = _users(request)
        users = user_store.list_all()
        notices = _notices(request).list_all()
    except SQLAlchemyError:
        logger.exception("Failed to load admin page")
        return _redirect("/", "server-error")
    authors = {u.id: u.full_name or u.username for u in users}
    return _render(
        request,
        "admin.html",
        {"user": session.user, "users": users, "notices": notices, "authors": authors, "roles": list(Role)},
    )


@router.post("/admin/add-user")
def admin_add_user(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
    role: str = Form(""),
    full_name: str = Form(""),
    session: SessionRecord = Depends(require_admin),
) -> RedirectResponse:
    try:
        _users(request).create(username, password, role, full_name)
    except DuplicateUsername:
        return _redirect("/admin", "user-exists")
    except InvalidUser:
        return _redirect("/admin", "missing-fields")
    except SQLAlchemyError:
        logger.exception("Admin %d failed to create user %r", session.user.id, username)
        return _redirect("/admin", "server-error")
    return _redirect("/admin")


@router.post("/admin/delete-user")
def admin_delete_user(
    request: Request,
    user_id: int = Form(...),
    session: SessionRecord = Depends(require_admin),
) -> RedirectResponse:
    try:
        deleted = _users(request).delete(user_id, session.user.id)
    except SelfDeleteRejected:
        return _redirect("/admin", "cannot-delete-self")
    except SQLAlchemyError:
        logger.exception("Admin %d failed to delete user %d", session.user.id, user_id)
        return _redirect("/admin", "server-error")
    if deleted:
        logger.info("Admin %d deleted user %d", session.user.id, user_id)
    return _redirect("/admin")


@router.post("/admin/delete-notice")
def admin_delete_notice(
    request: Request,
    notice_id: int = Form(...),
    session: SessionRecord = Depends(require_admin),
) -> RedirectResponse:
    try:
        result = _notices(request).delete_any(notice_id)
    except SQLAlchemyError:
        logger.exception("Admin %d failed to delete notice %d", session.user.id, notice_id)
        return _redirect("/admin", "server-error")
    if result is MutationResult.APPLIED:
        logger.info("Admin %d deleted notice %d", session.user.id, notice_id)
    return _redirect("/admin")


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------


@router.post("/logout")
def logout(request: Request, session: SessionRecord = Depends(require_authenticated)) -> RedirectResponse:
    """Destroy the session and clear the cookie."""
    session_store: SessionStore = request.app.state.session_store
    try:
        session_store.destroy(session.session_id)
    except SQLAlchemyError:
        logger.exception("Session destruction error")
    resp = _redirect("/")
    clear_session_cookie(resp)
    return resp
