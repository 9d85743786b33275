"""
auth/service.py -- Registration and login, composed from the auth primitives.

AuthService is the one place that knows the login sequence:

  1. authenticate(email, password)   -- timing-equalized bcrypt check
  2. if the account has TOTP enabled -- require and verify a code
  3. issue a session token

Both the JSON API (api/routes/auth.py) and the HTML forms (web/routes.py)
call into this class, so the two surfaces cannot drift apart.

Layer rule: no imports from api/, web/, notes/, or files/.
"""

from __future__ import annotations

import logging
import re

from auth.errors import InvalidCredentials, InvalidTOTP, TOTPRequired
from auth.models import User
from auth.passwords import authenticate, hash_password
from auth.store import UserStore
from auth.tokens import TokenService
from auth.totp import TOTPService
from core.errors import Internal, ValidationError

logger = logging.getLogger("notebox.auth")

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 72  # bcrypt input limit

_EMAIL_RE = re.compile(EMAIL_PATTERN)


def validate_registration(email: str, password: str) -> None:
    """Raise ValidationError if email/password do not meet the account rules."""
    problems: list[dict] = []
    if not _EMAIL_RE.match(email or ""):
        problems.append({"field": "email", "message": "must be a valid email address"})
    if len(password or "") < PASSWORD_MIN_LENGTH:
        problems.append({"field": "password", "message": f"must be at least {PASSWORD_MIN_LENGTH} characters"})
    elif len(password) > PASSWORD_MAX_LENGTH:
        problems.append({"field": "password", "message": f"must be at most {PASSWORD_MAX_LENGTH} characters"})
    if problems:
        raise ValidationError(details=problems)


class AuthService:
    def __init__(self, store: UserStore, tokens: TokenService, totp: TOTPService) -> None:
        self.store = store
        self.tokens = tokens
        self.totp = totp

    def register(self, email: str, password: str) -> User:
        """Create a password account.

        Raises ValidationError for malformed input and DuplicateEmail (a
        generic 500 "could not create user") if the email is taken.
        """
        validate_registration(email, password)
        user_id = self.store.create_user(User(email=email, hashed_password=hash_password(password)))
        logger.info("Registered user_id=%s", user_id)
        user = self.store.get_by_id(user_id)
        if user is None:
            raise Internal("could not create user")
        return user

    def authenticate(self, email: str, password: str, totp_code: str | None = None) -> User:
        """Check credentials and, when enabled, the second factor.

        Unknown email and wrong password raise the same InvalidCredentials
        so callers cannot enumerate accounts.
        """
        user = authenticate(self.store, email, password)
        if user is None:
            raise InvalidCredentials()
        if user.totp_enabled:
            if not totp_code:
                raise TOTPRequired()
            if not self.totp.verify(totp_code, user.totp_secret):
                raise InvalidTOTP()
        return user

    def login(self, email: str, password: str, totp_code: str | None = None) -> str:
        """Return a session token for valid credentials (see authenticate())."""
        user = self.authenticate(email, password, totp_code)
        return self.tokens.issue(user.id)
