"""
web/session.py -- Cookie-based session for the HTML UI.

The browser UI never sees a bearer header. Instead it carries three cookies:

  gonotes_token  the same signed JWT the API issues, HttpOnly, 24 h
  gonotes_csrf   a random nonce, echoed back in every form as csrf_token
  flash          a one-shot message shown on the next page render

CSRF is a double-submit check: the nonce is set as a cookie on each form
render and must match the hidden form field on the POST. A cross-site page
can make the browser send the cookie but cannot read it to fill the field.

SessionMiddleware resolves request.state.user from gonotes_token on every
request. It is best-effort: a bad or expired cookie is deleted on the
response, never turned into an error.

Layer rule: web/ may import from auth/ and core/, never from api/.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from typing import Optional
from urllib.parse import quote, unquote

from fastapi import Request
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from auth.errors import TokenError
from auth.models import User

logger = logging.getLogger("notebox.web")

CSRF_COOKIE = "gonotes_csrf"
SESSION_COOKIE = "gonotes_token"
FLASH_COOKIE = "flash"
CSRF_FIELD = "csrf_token"

_FLASH_MAX_AGE = 60


# ---------------------------------------------------------------------------
# CSRF
# ---------------------------------------------------------------------------


def new_csrf_token() -> str:
    return secrets.token_urlsafe(32)


def issue_csrf(response: Response, token: Optional[str] = None, secure: bool = False) -> str:
    """Set the CSRF cookie on response and return the nonce for the form."""
    token = token or new_csrf_token()
    response.set_cookie(CSRF_COOKIE, token, httponly=True, secure=secure, samesite="lax", path="/")
    return token


def validate_csrf(request: Request, form_value: Optional[str]) -> bool:
    """True when the form field matches the cookie. Constant-time compare."""
    cookie_value = request.cookies.get(CSRF_COOKIE)
    if not cookie_value or not form_value:
        return False
    return hmac.compare_digest(cookie_value, form_value)


# ---------------------------------------------------------------------------
# Flash
# ---------------------------------------------------------------------------


def set_flash(response: Response, message: str, secure: bool = False) -> None:
    """Queue message for the next page render (typically after a redirect)."""
    response.set_cookie(
        FLASH_COOKIE, quote(message), max_age=_FLASH_MAX_AGE, httponly=True, secure=secure, samesite="lax", path="/"
    )


def _sets_cookie(response: Response, name: str) -> bool:
    prefix = f"{name}="
    return any(value.startswith(prefix) for value in response.headers.getlist("set-cookie"))


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


def resolve_session_user(request: Request, token: str) -> Optional[User]:
    """Return the user behind a session token, or None if it does not check out."""
    try:
        claims = request.app.state.token_service.validate(token)
    except TokenError:
        return None
    return request.app.state.user_store.get_by_id(claims.user_id)


class SessionMiddleware(BaseHTTPMiddleware):
    """Populate request.state.user and request.state.flash for templates."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request.state.user = None
        request.state.flash = None

        stale_session = False
        token = request.cookies.get(SESSION_COOKIE)
        if token:
            user = await run_in_threadpool(resolve_session_user, request, token)
            if user is None:
                logger.debug("Discarding invalid session cookie on %s", request.url.path)
                stale_session = True
            request.state.user = user

        flash = request.cookies.get(FLASH_COOKIE)
        if flash:
            request.state.flash = unquote(flash)

        response = await call_next(request)

        # Never clobber a cookie the handler just set (login, a new flash).
        if stale_session and not _sets_cookie(response, SESSION_COOKIE):
            response.delete_cookie(SESSION_COOKIE, path="/")
        if flash and not _sets_cookie(response, FLASH_COOKIE):
            response.delete_cookie(FLASH_COOKIE, path="/")
        return response
