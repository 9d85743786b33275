"""
api/main.py -- FastAPI application entry point for Notebox.

Run with:      python main.py
               uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. assign_request_id     -- X-Request-ID in, X-Request-ID out
  2. log_requests          -- one access-log line per request
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  4. CORSMiddleware        -- adds CORS headers for allowed browser origins
  5. TrustedHostMiddleware -- rejects requests with unexpected Host headers

Lifespan builds every service from Settings on startup and closes the stores
on shutdown. Tests swap the lifespan out and call wire_services() themselves
with in-memory stores.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.datastructures import State
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import HealthResponse
from api.responses import app_error_response, error_response
from api.routes.auth import router as auth_router
from api.routes.files import router as files_router
from api.routes.notes import router as notes_router
from api.routes.oauth import router as oauth_router
from auth.oauth import OAuthBroker, OAuthProvider, build_providers
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenService
from auth.totp import TOTPService
from core.config import Settings, get_settings
from core.errors import AppError, ValidationError
from files.registry import InMemoryFileRegistry
from files.storage import FileStorage
from notes.store import NoteStore

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("notebox.api")

# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def wire_services(
    state: State,
    settings: Settings,
    user_store: UserStore,
    note_store: NoteStore,
    file_storage: FileStorage,
    providers: Optional[dict[str, OAuthProvider]] = None,
) -> None:
    """Attach every service the routes read from request.app.state.

    Pattern: composition root. Routes never construct services; they look
    them up here, which is what lets tests hand in in-memory stores and fake
    OAuth providers.
    """
    token_service = TokenService(settings.secret_key, settings.token_expire_seconds)
    totp_service = TOTPService(
        user_store,
        issuer=settings.totp_issuer,
        valid_window=settings.totp_valid_window,
        require_confirmation=settings.totp_require_confirmation,
    )
    state.settings = settings
    state.user_store = user_store
    state.note_store = note_store
    state.file_storage = file_storage
    state.token_service = token_service
    state.totp_service = totp_service
    state.auth_service = AuthService(user_store, token_service, totp_service)
    state.oauth_broker = OAuthBroker(user_store, providers if providers is not None else build_providers(settings))


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build stores and services on startup; close the stores on shutdown."""
    logger.info("Notebox API starting up")
    user_store = UserStore(settings.database_url)
    note_store = NoteStore(settings.database_url)
    file_storage = FileStorage(Path(settings.upload_dir), InMemoryFileRegistry(), settings.max_upload_bytes)
    wire_services(app.state, settings, user_store, note_store, file_storage)
    logger.info(
        "Services initialized (users=%d, oauth providers=%s)",
        user_store.count_users(),
        ", ".join(app.state.oauth_broker.enabled) or "none",
    )

    yield

    note_store.close()
    user_store.close()
    logger.info("Notebox API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title=f"{settings.app_name} API",
    description="Personal notes and files with password, TOTP and OAuth login.",
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() wraps the existing stack, so the LAST one registered is
# the OUTERMOST. @app.middleware("http") functions follow the same rule.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s rid=%s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
        getattr(request.state, "request_id", "-"),
    )
    return response


@app.middleware("http")
async def assign_request_id(request: Request, call_next):
    """Propagate the caller's X-Request-ID, or mint one, and echo it back."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, tags=["Auth"])
app.include_router(oauth_router, tags=["OAuth"])
app.include_router(notes_router, tags=["Notes"])
app.include_router(files_router, tags=["Files"])
# Web UI router is mounted by asgi.py, not here.
# api/ and web/ are independent layers -- only the top-level asgi.py imports both.


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same {"error", "details"} envelope so API clients
# can parse errors uniformly.
# ---------------------------------------------------------------------------


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return app_error_response(exc)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with one {field, message} entry per failed constraint."""
    details = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ())]
        field = ".".join(loc[1:]) if len(loc) > 1 else ".".join(loc)
        details.append({"field": field, "message": err.get("msg", "invalid value")})
    return error_response(400, ValidationError.message, details)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render framework HTTP errors (unknown route, wrong method) in the common envelope."""
    resp = error_response(exc.status_code, str(exc.detail).lower())
    if exc.headers:
        resp.headers.update(exc.headers)
    return resp


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a Retry-After hint when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    resp = error_response(429, "too many requests", str(exc.detail))
    resp.headers["Retry-After"] = str(retry_after)
    return resp


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The raw exception is logged, never returned. The client receives only the
    generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return error_response(500, "internal server error")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=settings.version)
