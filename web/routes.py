"""
web/routes.py -- Jinja2 template routes for the Notebox web UI.

These routes serve server-rendered HTML. They share app.state with the API
routes (same user store, note store, auth service) but authenticate with the
gonotes_token cookie instead of a bearer header (see web/session.py).

Every form POST is CSRF-checked. A failed submission re-renders the form with
an error flash and a freshly issued CSRF nonce.

Route registration order matters: GET /ui/notes/{note_id}/edit and
POST /ui/notes/{note_id}/delete are registered before POST /ui/notes/{note_id}
so the literal suffixes are never read as part of a path param.

Routes:
  GET  /                               -- redirect to /ui/notes
  GET  /login                          -- login form (+ OAuth buttons)
  POST /login                          -- password (+ TOTP) login, sets session cookie
  GET  /register                       -- registration form
  POST /register                       -- create account, sets session cookie
  POST /logout                         -- clear session cookie, redirect /login
  GET  /ui/notes                       -- note list + create form (auth required)
  POST /ui/notes                       -- HTMX: create, return the new list item
  GET  /ui/notes/{note_id}/edit        -- edit form (auth required)
  POST /ui/notes/{note_id}/delete      -- HTMX: delete, remove the list item
  POST /ui/notes/{note_id}             -- handle edit, redirect /ui/notes
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates

from auth.service import AuthService
from auth.tokens import set_session_cookie
from core.errors import AppError
from notes.models import Note
from notes.store import NoteStore
from notes.validation import validate_note
from web.session import CSRF_FIELD, SESSION_COOKIE, issue_csrf, new_csrf_token, set_flash, validate_csrf

logger = logging.getLogger("notebox.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
router = APIRouter()

_CSRF_FAILED = "Your form expired. Please try again."
_PAGE_SIZE = 20

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _safe_next(next_url: Optional[str]) -> str:
    """Validate a post-login redirect target. Only accept relative paths.

    Prevents open redirects via /login?next=https://attacker.com or
    /login?next=//attacker.com.
    """
    if next_url and next_url.startswith("/") and not next_url.startswith("//"):
        return next_url
    return "/ui/notes"


def _is_htmx(request: Request) -> bool:
    return request.headers.get("HX-Request") == "true"


def _secure(request: Request) -> bool:
    return request.app.state.settings.secure_cookies


def _redirect(request: Request, url: str) -> Response:
    """302 for normal requests; HX-Redirect for HTMX so the whole page navigates."""
    if _is_htmx(request):
        return Response(status_code=200, headers={"HX-Redirect": url})
    return RedirectResponse(url, status_code=302)


def _render_form(
    request: Request,
    template: str,
    context: Optional[dict] = None,
    status_code: int = 200,
) -> HTMLResponse:
    """Render a page that contains a form, with a fresh CSRF nonce in cookie and context."""
    token = new_csrf_token()
    ctx = {"csrf_token": token, "csrf_field": CSRF_FIELD}
    ctx.update(context or {})
    resp = templates.TemplateResponse(request, template, ctx, status_code=status_code)
    issue_csrf(resp, token, secure=_secure(request))
    return resp


def _require_user(request: Request) -> Optional[Response]:
    """Return a redirect to /login if the request has no session user, else None.

    Call at the top of protected route handlers:
        if redirect := _require_user(request):
            return redirect
    """
    if getattr(request.state, "user", None) is None:
        return _redirect(request, f"/login?next={request.url.path}")
    return None


def _start_session(request: Request, user_id: int) -> Response:
    """Issue a session token cookie and send the browser on to its target."""
    auth: AuthService = request.app.state.auth_service
    settings = request.app.state.settings
    resp = _redirect(request, _safe_next(request.query_params.get("next")))
    set_session_cookie(
        resp,
        SESSION_COOKIE,
        auth.tokens.issue(user_id),
        max_age=settings.session_cookie_max_age,
        secure=settings.secure_cookies,
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _error_lines(exc: AppError) -> list[str]:
    if isinstance(exc.details, list):
        return [f"{d['field']}: {d['message']}" for d in exc.details if isinstance(d, dict)]
    return []


# ---------------------------------------------------------------------------
# Login / registration
# ---------------------------------------------------------------------------


@router.get("/", include_in_schema=False)
def index() -> RedirectResponse:
    return RedirectResponse("/ui/notes", status_code=302)


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> Response:
    """Render the login page with email/password/TOTP form and OAuth buttons."""
    if request.state.user is not None:
        return RedirectResponse("/ui/notes", status_code=302)
    return _render_form(request, "login.html", {"providers": request.app.state.oauth_broker.enabled})


@router.post("/login", response_class=HTMLResponse)
def login_post(
    request: Request,
    email: str = Form(default=""),
    password: str = Form(default=""),
    totp: str = Form(default=""),
    csrf_token: str = Form(default=""),
) -> Response:
    """Handle the login form. The TOTP field is required only when the account has it enabled."""
    providers = request.app.state.oauth_broker.enabled
    if not validate_csrf(request, csrf_token):
        return _render_form(
            request, "login.html", {"flash": _CSRF_FAILED, "email": email, "providers": providers}, 400
        )

    auth: AuthService = request.app.state.auth_service
    try:
        user = auth.authenticate(email.strip(), password, totp.strip() or None)
    except AppError as exc:
        return _render_form(
            request,
            "login.html",
            {"flash": exc.message, "email": email, "providers": providers},
            exc.status_code,
        )
    logger.info("UI login for user_id=%s", user.id)
    return _start_session(request, user.id)


@router.get("/register", response_class=HTMLResponse)
def register_form(request: Request) -> Response:
    if request.state.user is not None:
        return RedirectResponse("/ui/notes", status_code=302)
    return _render_form(request, "register.html")


@router.post("/register", response_class=HTMLResponse)
def register_post(
    request: Request,
    email: str = Form(default=""),
    password: str = Form(default=""),
    csrf_token: str = Form(default=""),
) -> Response:
    if not validate_csrf(request, csrf_token):
        return _render_form(request, "register.html", {"flash": _CSRF_FAILED, "email": email}, 400)

    auth: AuthService = request.app.state.auth_service
    try:
        user = auth.register(email.strip(), password)
    except AppError as exc:
        return _render_form(
            request,
            "register.html",
            {"flash": exc.message, "errors": _error_lines(exc), "email": email},
            exc.status_code,
        )
    return _start_session(request, user.id)


@router.post("/logout")
def logout(request: Request) -> Response:
    """Clear the session cookie and redirect to the login page."""
    resp = _redirect(request, "/login")
    resp.delete_cookie(SESSION_COOKIE, path="/")
    set_flash(resp, "You have been logged out.", secure=_secure(request))
    return resp


# ---------------------------------------------------------------------------
# Notes UI
# ---------------------------------------------------------------------------


@router.get("/ui/notes", response_class=HTMLResponse)
def notes_page(request: Request, page: int = 1) -> Response:
    if redirect := _require_user(request):
        return redirect
    page = max(page, 1)
    store: NoteStore = request.app.state.note_store
    notes, total = store.list_page(request.state.user.id, page, _PAGE_SIZE)
    return _render_form(
        request,
        "notes.html",
        {
            "notes": notes,
            "page": page,
            "has_prev": page > 1,
            "has_next": page * _PAGE_SIZE < total,
            "total": total,
        },
    )


@router.post("/ui/notes", response_class=HTMLResponse)
def notes_create(
    request: Request,
    title: str = Form(default=""),
    content: str = Form(default=""),
    csrf_token: str = Form(default=""),
) -> Response:
    """HTMX: create a note and return its list item. Errors go to the #flash slot."""
    if redirect := _require_user(request):
        return redirect

    error: Optional[str] = None
    if not validate_csrf(request, csrf_token):
        error = _CSRF_FAILED
    else:
        try:
            validate_note(title, content)
        except AppError as exc:
            error = "; ".join(_error_lines(exc)) or exc.message

    if error is not None:
        if _is_htmx(request):
            return templates.TemplateResponse(
                request,
                "partials/flash.html",
                {"flash": error, "level": "danger"},
                headers={"HX-Retarget": "#flash", "HX-Reswap": "innerHTML"},
            )
        resp = RedirectResponse("/ui/notes", status_code=303)
        set_flash(resp, error, secure=_secure(request))
        return resp

    store: NoteStore = request.app.state.note_store
    owner_id = request.state.user.id
    note = store.get(store.create(Note(owner_id=owner_id, title=title, content=content)), owner_id)
    if _is_htmx(request):
        return templates.TemplateResponse(
            request, "partials/note_item.html", {"note": note, "csrf_token": csrf_token, "csrf_field": CSRF_FIELD}
        )
    resp = RedirectResponse("/ui/notes", status_code=303)
    set_flash(resp, "Note created.", secure=_secure(request))
    return resp


@router.get("/ui/notes/{note_id}/edit", response_class=HTMLResponse)
def notes_edit_form(request: Request, note_id: int) -> Response:
    if redirect := _require_user(request):
        return redirect
    note = request.app.state.note_store.get(note_id, request.state.user.id)
    if note is None:
        return HTMLResponse("<p class='text-danger'>Note not found.</p>", status_code=404)
    return _render_form(request, "note_edit.html", {"note": note, "title": note.title, "content": note.content})


@router.post("/ui/notes/{note_id}/delete", response_class=HTMLResponse)
def notes_delete(request: Request, note_id: int, csrf_token: str = Form(default="")) -> Response:
    """HTMX: delete a note. An empty 200 lets hx-swap="outerHTML" drop the item."""
    if redirect := _require_user(request):
        return redirect
    if not validate_csrf(request, csrf_token):
        resp = _redirect(request, "/ui/notes")
        set_flash(resp, _CSRF_FAILED, secure=_secure(request))
        return resp

    deleted = request.app.state.note_store.delete(note_id, request.state.user.id)
    if _is_htmx(request):
        return HTMLResponse("", status_code=200 if deleted else 404)
    resp = RedirectResponse("/ui/notes", status_code=303)
    set_flash(resp, "Note deleted." if deleted else "Note not found.", secure=_secure(request))
    return resp


@router.post("/ui/notes/{note_id}", response_class=HTMLResponse)
def notes_update(
    request: Request,
    note_id: int,
    title: str = Form(default=""),
    content: str = Form(default=""),
    csrf_token: str = Form(default=""),
) -> Response:
    if redirect := _require_user(request):
        return redirect
    store: NoteStore = request.app.state.note_store
    owner_id = request.state.user.id
    note = store.get(note_id, owner_id)
    if note is None:
        return HTMLResponse("<p class='text-danger'>Note not found.</p>", status_code=404)

    context = {"note": note, "title": title, "content": content}
    if not validate_csrf(request, csrf_token):
        return _render_form(request, "note_edit.html", {**context, "flash": _CSRF_FAILED}, 400)
    try:
        validate_note(title, content)
    except AppError as exc:
        return _render_form(
            request, "note_edit.html", {**context, "flash": exc.message, "errors": _error_lines(exc)}, 400
        )

    store.update(note_id, owner_id, title, content)
    resp = RedirectResponse("/ui/notes", status_code=303)
    set_flash(resp, "Note updated.", secure=_secure(request))
    return resp
