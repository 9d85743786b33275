"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services
do the work; route handlers map these onto API response models.

Layer rule: no imports from api/, web/, notes/, or files/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    """An account that can log in by password, by OAuth, or both.

    hashed_password is None for OAuth-only users (created on first provider
    login). oauth_provider / oauth_subject are None for password accounts.

    totp_secret is the base32 shared secret, None until the user enrolls.
    totp_enabled is never True while totp_secret is None -- UserStore.set_totp
    and UserStore.enable_totp enforce that.
    """

    email: str
    id: int | None = None
    hashed_password: str | None = None  # None = OAuth-only user
    totp_secret: str | None = None
    totp_enabled: bool = False
    oauth_provider: str | None = None  # "google", "github"
    oauth_subject: str | None = None  # provider's stable user ID
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class TokenClaims:
    """Verified contents of a session token."""

    user_id: int
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class AuthContext:
    """Request-scoped identity attached by the bearer-token dependency.

    Downstream handlers (notes, files) only ever see the user ID -- they do
    not load the User record unless they need it.
    """

    user_id: int


@dataclass(frozen=True)
class OAuthIdentity:
    """Provider-scoped identity returned by OAuthProvider.fetch_identity()."""

    subject: str
    email: str


@dataclass(frozen=True)
class Enrollment:
    """Result of TOTP enrollment, shown to the user exactly once."""

    secret: str
    uri: str
    qr_data_url: str
