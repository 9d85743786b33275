"""
api/routes/auth.py -- Account and second-factor REST endpoints.

Routes:
  POST /auth/register      -- create a password account; 201
  POST /auth/login         -- password (+ TOTP) login; returns a bearer token
  GET  /auth/me            -- current user (requires auth)
  POST /auth/totp/enable   -- generate a TOTP secret + QR code (requires auth)
  POST /auth/totp/verify   -- check a TOTP code against the stored secret (requires auth)

Security:
  POST /login is rate-limited per client IP (LOGIN_RATE_LIMIT).
  Unknown email and wrong password return byte-identical 401 bodies.
  Cache-Control: no-store on every response that carries a token or secret.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_limit
from api.models import (
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    TOTPEnableResponse,
    TOTPVerifyRequest,
    UserOut,
)
from auth.dependencies import get_current_user
from auth.models import User
from auth.service import AuthService
from auth.totp import TOTPService

# Auth policy:
# - POST /auth/register:     public
# - POST /auth/login:        public, rate-limited
# - GET  /auth/me:           requires auth (get_current_user)
# - POST /auth/totp/enable:  requires auth (get_current_user)
# - POST /auth/totp/verify:  requires auth (get_current_user)
router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> RegisterResponse:
    """Create an account with a bcrypt-hashed password.

    A taken email surfaces as a generic 500 "could not create user"; the
    response never confirms that the address is registered.
    """
    auth: AuthService = request.app.state.auth_service
    user = auth.register(body.email, body.password)
    return RegisterResponse(id=user.id, email=user.email)


@limiter.limit(login_limit)  # must be ABOVE @router so FastAPI sees the undecorated signature
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Exchange email + password (+ TOTP code when enabled) for a bearer token.

    Failures raise InvalidCredentials, TOTPRequired or InvalidTOTP, all 401,
    rendered by the AppError handler in api/main.py.
    """
    auth: AuthService = request.app.state.auth_service
    token = auth.login(body.email, body.password, body.totp)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=auth.tokens.ttl_seconds,
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
def me(current_user: User = Depends(get_current_user)) -> MeResponse:
    """Return the account behind the bearer token."""
    return MeResponse(user=UserOut.from_user(current_user))


@router.post("/auth/totp/enable", response_model=TOTPEnableResponse)
def enable_totp(request: Request, current_user: User = Depends(get_current_user)) -> JSONResponse:
    """Generate and store a fresh TOTP secret for the current user.

    Calling this again replaces the previous secret. The secret and QR code
    are returned once and are not retrievable afterwards.
    """
    totp: TOTPService = request.app.state.totp_service
    enrollment = totp.enroll(current_user)
    resp = JSONResponse(
        content=TOTPEnableResponse(
            secret=enrollment.secret,
            uri=enrollment.uri,
            qr=enrollment.qr_data_url,
        ).model_dump()
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/totp/verify", response_model=MessageResponse)
def verify_totp(
    request: Request,
    body: TOTPVerifyRequest,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    """Check a code against the stored secret.

    400 if the account has no secret, 401 if the code is wrong. When
    TOTP_REQUIRE_CONFIRMATION is set, a correct code is what turns the
    second factor on.
    """
    totp: TOTPService = request.app.state.totp_service
    totp.confirm(current_user, body.token)
    return MessageResponse(message="TOTP verified")
