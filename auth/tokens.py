"""
auth/tokens.py -- JWT session tokens and the cookie helper.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry the user ID (as both the `sub`
       claim and an integer `user_id` claim), issued-at and expiry. Nothing
       is stored server-side: validity is recomputed from signature + expiry
       on every request, so there is no revocation list. Rotating SECRET_KEY
       invalidates every outstanding token at once -- that is the only
       revocation mechanism.

  Errors: validate() distinguishes TokenExpired from InvalidSignature so
       tests and logs can tell them apart. The bearer dependency and the UI
       session middleware collapse both into "unauthenticated" before anything
       reaches the client.

  Configuration: TokenService receives its secret and TTL at construction.
       The lifespan in api/main.py builds exactly one instance from Settings.

Layer rule: no imports from api/, web/, notes/, or files/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import InvalidSignature, TokenExpired
from auth.models import TokenClaims

logger = logging.getLogger("notebox.auth")

_ALGORITHM = "HS256"


class TokenService:
    """Issues and validates signed session tokens.

    Usage:
        tokens = TokenService(settings.secret_key, settings.token_expire_seconds)
        token = tokens.issue(user.id)
        claims = tokens.validate(token)   # raises TokenExpired / InvalidSignature
    """

    def __init__(self, secret_key: str, ttl_seconds: int) -> None:
        if not secret_key:
            raise ValueError("TokenService requires a signing key")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._secret_key = secret_key
        self.ttl_seconds = ttl_seconds

    def issue(self, user_id: int, now: datetime | None = None) -> str:
        """Encode a signed JWT for user_id that expires ttl_seconds after now."""
        issued = now or datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "user_id": user_id,
            "iat": issued,
            "exp": issued + timedelta(seconds=self.ttl_seconds),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def validate(self, token: str) -> TokenClaims:
        """Verify signature and expiry and return the token's claims.

        Raises:
            TokenExpired:     signature is valid but exp is in the past.
            InvalidSignature: anything else -- wrong key, tampered payload,
                              malformed token, missing claims.
        """
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except ExpiredSignatureError as exc:
            raise TokenExpired() from exc
        except JWTError as exc:
            raise InvalidSignature() from exc

        user_id = payload.get("user_id")
        if not isinstance(user_id, int) or "exp" not in payload or "iat" not in payload:
            raise InvalidSignature()
        return TokenClaims(
            user_id=user_id,
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_session_cookie(response, name: str, token: str, max_age: int, secure: bool = False) -> None:
    """Write a session JWT as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": cookie sent on same-site navigations and top-level GETs,
        but not on cross-site POSTs.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: should match the JWT expiry so both expire together.
    """
    response.set_cookie(
        name,
        value=token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=max_age,
        path="/",
    )
