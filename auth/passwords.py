"""
auth/passwords.py -- bcrypt password hashing and constant-time login checks.

Using bcrypt directly rather than passlib[bcrypt]: passlib's wrap-bug
detection feeds bcrypt a password longer than 72 bytes, which bcrypt 4.x
rejects. Direct usage has no compatibility shim and is actively maintained.

bcrypt only looks at the first 72 bytes of its input, and recent releases
refuse longer input outright. _encode() truncates explicitly so hashing and
verification always see the same bytes.

Layer rule: no imports from api/, web/, notes/, or files/.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import bcrypt

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("notebox.auth")

# Fixed work factor. 12 rounds is bcrypt's library default; pinned here so a
# library upgrade cannot silently change login latency.
BCRYPT_ROUNDS = 12
_BCRYPT_MAX_BYTES = 72


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(_encode(plain), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    bcrypt.checkpw compares in constant time. A malformed or empty hash
    counts as a mismatch rather than an error.
    """
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. verify_password() always runs, even when the
# email does not exist, so response time does not reveal account existence.
_DUMMY_HASH: str = hash_password("notebox_timing_dummy")


def authenticate(store: UserStore, email: str, password: str) -> User | None:
    """Check an email/password pair with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown email or OAuth-only account: bcrypt runs against _DUMMY_HASH
    - Wrong password: bcrypt runs against the real hash

    Returns the User on success, None on any failure.
    """
    user = store.get_by_email(email)
    if user is None or not user.hashed_password:
        # Do NOT return early before running bcrypt
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user
