"""
auth/errors.py -- Failures raised by the authentication subsystem.

Security-sensitive failures deliberately share messages. InvalidCredentials
is raised for both an unknown email and a wrong password, and the bearer
dependency reports every token problem as plain "unauthorized" -- callers
must never be able to tell which check failed.

Layer rule: imports only from core/.
"""

from __future__ import annotations

from core.errors import Internal, NotFound, Unauthorized, ValidationError


class InvalidCredentials(Unauthorized):
    message = "invalid email or password"


class TOTPRequired(Unauthorized):
    message = "TOTP required"


class InvalidTOTP(Unauthorized):
    message = "invalid TOTP"


class TOTPNotEnabled(ValidationError):
    message = "TOTP not enabled"


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class TokenError(Unauthorized):
    """Base for token validation failures. Route code treats both alike."""

    message = "invalid token"


class InvalidSignature(TokenError):
    message = "invalid token"


class TokenExpired(TokenError):
    message = "token expired"


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------


class StateMismatch(Unauthorized):
    message = "invalid oauth state"


class OAuthExchangeFailed(Unauthorized):
    message = "oauth code exchange failed"


class UnknownProvider(NotFound):
    message = "unknown oauth provider"


class NoEmailAvailable(Internal):
    message = "no email found"


class ProviderUnavailable(Internal):
    message = "oauth provider unavailable"


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class DuplicateEmail(Internal):
    # Surfaced as a generic creation failure so registration does not reveal
    # which emails already have accounts.
    message = "could not create user"
