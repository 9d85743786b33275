"""
auth/dependencies.py -- FastAPI Depends() helpers for bearer-token auth.

The JSON API accepts exactly one credential: an Authorization: Bearer <token>
header. (The HTML UI uses the gonotes_token cookie instead; see web/session.py.)

get_auth_context() is the request-level auth gate. On success it returns a
typed AuthContext and also stores it on request.state.auth so middleware and
exception handlers can see who made the request. Every failure -- header
missing, wrong scheme, bad signature, expired token -- raises the same
Unauthorized("unauthorized"), so a client learns nothing about which check
failed.

get_current_user() builds on it for handlers that need the full User record.

Layer rule: no imports from web/, notes/, or files/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.errors import TokenError
from auth.models import AuthContext, User
from auth.tokens import TokenService
from core.errors import Unauthorized

_BEARER_PREFIX = "Bearer "


def extract_bearer_token(request: Request) -> str | None:
    """Return the token from the Authorization header, or None if absent/malformed."""
    header = request.headers.get("Authorization", "")
    if not header.startswith(_BEARER_PREFIX):
        return None
    token = header[len(_BEARER_PREFIX) :].strip()
    return token or None


def get_auth_context(request: Request) -> AuthContext:
    """Require a valid bearer token. Raises Unauthorized (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(auth: AuthContext = Depends(get_auth_context)): ...
    """
    token = extract_bearer_token(request)
    if token is None:
        raise Unauthorized()
    tokens: TokenService = request.app.state.token_service
    try:
        claims = tokens.validate(token)
    except TokenError as exc:
        raise Unauthorized() from exc
    ctx = AuthContext(user_id=claims.user_id)
    request.state.auth = ctx
    return ctx


def get_current_user(request: Request) -> User:
    """Require a valid bearer token whose user still exists.

    A token for a deleted account is reported exactly like a bad token.
    """
    ctx = get_auth_context(request)
    user = request.app.state.user_store.get_by_id(ctx.user_id)
    if user is None:
        raise Unauthorized()
    return user
