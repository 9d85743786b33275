"""
api/routes/oauth.py -- Google / GitHub OAuth 2.0 login endpoints.

Routes:
  GET /auth/{provider}/login     -- 302 to the provider; sets the oauth_state cookie
  GET /auth/{provider}/callback  -- verify state, exchange code, return a bearer token

CSRF protection is a double-submit check: the state nonce travels to the
provider in the redirect URL and back to us in ?state=, and is also held in
a short-lived HttpOnly cookie. The callback rejects any mismatch before it
makes a single outbound request. The cookie is cleared on every callback
response, success or failure, so a nonce is never usable twice.

Unknown or unconfigured provider names are a 404.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, RedirectResponse

from api.models import LoginResponse
from api.responses import app_error_response
from auth.oauth import STATE_COOKIE, STATE_MAX_AGE, OAuthBroker
from auth.tokens import TokenService
from core.errors import AppError

logger = logging.getLogger("notebox.api")

router = APIRouter()


@router.get("/auth/{provider}/login")
def oauth_login(request: Request, provider: str) -> RedirectResponse:
    """Redirect the browser to the provider's consent page."""
    broker: OAuthBroker = request.app.state.oauth_broker
    url, state = broker.begin_login(provider)
    resp = RedirectResponse(url, status_code=302)
    resp.set_cookie(
        STATE_COOKIE,
        state,
        max_age=STATE_MAX_AGE,
        httponly=True,
        secure=request.app.state.settings.secure_cookies,
        samesite="lax",  # sent on the provider's top-level redirect back to us
        path="/",
    )
    return resp


@router.get("/auth/{provider}/callback", response_model=LoginResponse)
async def oauth_callback(
    request: Request,
    provider: str,
    state: Optional[str] = None,
    code: Optional[str] = None,
) -> JSONResponse:
    """Finish the login and hand back a bearer token.

    Flow:
      1. Compare ?state= with the oauth_state cookie (constant time).
      2. Exchange the authorization code for a provider access token.
      3. Fetch the provider identity (GitHub falls back to /user/emails).
      4. Find the user by (provider, subject) or create one.
      5. Issue a session token.
    """
    broker: OAuthBroker = request.app.state.oauth_broker
    tokens: TokenService = request.app.state.token_service
    try:
        user = await broker.handle_callback(provider, state, request.cookies.get(STATE_COOKIE), code)
    except AppError as exc:
        logger.info("OAuth callback for %r failed: %s", provider, exc.message)
        resp = app_error_response(exc)
    else:
        resp = JSONResponse(
            content=LoginResponse(
                token=tokens.issue(user.id),
                token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
                expires_in=tokens.ttl_seconds,
            ).model_dump()
        )
    resp.delete_cookie(STATE_COOKIE, path="/")
    resp.headers["Cache-Control"] = "no-store"
    return resp
