"""
auth/totp.py -- RFC 6238 time-based one-time passwords (second factor).

pyotp does the HMAC-SHA1 arithmetic: 30-second steps, 6 digits. qrcode
renders the otpauth:// provisioning URI as a PNG so the enable endpoint can
hand the browser a data: URL it can show as-is.

Drift tolerance: verify() accepts the current step and valid_window steps on
either side (default 1, i.e. +/- 30 seconds). Two steps away is rejected.
There is no lockout after repeated failures; the login rate limit in
api/limiter.py is the only brake on guessing.

Enrollment semantics: by default enroll() enables the factor immediately,
before the user has proven their authenticator works. Setting
TOTP_REQUIRE_CONFIRMATION=true defers the enabled flag to the first
successful confirm().

Layer rule: no imports from api/, web/, notes/, or files/.
"""

from __future__ import annotations

import base64
import io
import logging
from datetime import datetime
from typing import TYPE_CHECKING

import pyotp
import qrcode
from qrcode.constants import ERROR_CORRECT_M

from auth.errors import InvalidTOTP, TOTPNotEnabled
from auth.models import Enrollment, User

if TYPE_CHECKING:
    from auth.store import UserStore

logger = logging.getLogger("notebox.auth.totp")

_DIGITS = 6
# 32 base32 characters encode 20 random bytes (160 bits), the RFC 4226
# recommended secret length for HMAC-SHA1.
_SECRET_LENGTH = 32


def render_qr_data_url(uri: str) -> str:
    """Render uri as a QR code and return it as a base64 PNG data URL."""
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=8, border=2)
    qr.add_data(uri)
    qr.make(fit=True)
    buf = io.BytesIO()
    qr.make_image().save(buf)
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


class TOTPService:
    """Enrolls users in TOTP and checks their codes."""

    def __init__(
        self,
        store: UserStore,
        issuer: str,
        valid_window: int = 1,
        require_confirmation: bool = False,
    ) -> None:
        self._store = store
        self.issuer = issuer
        self.valid_window = valid_window
        self.require_confirmation = require_confirmation

    @staticmethod
    def generate_secret() -> str:
        return pyotp.random_base32(length=_SECRET_LENGTH)

    def provisioning_uri(self, secret: str, account: str) -> str:
        """Return the otpauth:// URI authenticator apps import."""
        return pyotp.TOTP(secret, digits=_DIGITS).provisioning_uri(name=account, issuer_name=self.issuer)

    def enroll(self, user: User) -> Enrollment:
        """Generate and persist a fresh secret for user.

        Re-enrolling replaces the previous secret; codes from the old one stop
        working immediately.
        """
        secret = self.generate_secret()
        enabled = not self.require_confirmation
        self._store.set_totp(user.id, secret, enabled=enabled)
        uri = self.provisioning_uri(secret, user.email)
        logger.info("TOTP enrolled for user_id=%s (enabled=%s)", user.id, enabled)
        return Enrollment(secret=secret, uri=uri, qr_data_url=render_qr_data_url(uri))

    def verify(self, code: str | None, secret: str | None, for_time: datetime | int | None = None) -> bool:
        """Return True if code is valid for secret at for_time (default: now).

        Fails closed: empty input, non-digit input, wrong length or a bad
        secret all return False.
        """
        if not code or not secret:
            return False
        code = code.strip()
        if len(code) != _DIGITS or not code.isdigit():
            return False
        try:
            return pyotp.TOTP(secret, digits=_DIGITS).verify(code, for_time=for_time, valid_window=self.valid_window)
        except (ValueError, TypeError):
            # binascii.Error (bad base32) is a ValueError subclass
            logger.warning("TOTP verification failed on a malformed secret")
            return False

    def confirm(self, user: User, code: str) -> None:
        """Check a code against an enrolled user's secret.

        Raises TOTPNotEnabled if the user has no secret, InvalidTOTP if the
        code is wrong. In confirmation mode the first good code turns the
        factor on.
        """
        if not user.totp_secret:
            raise TOTPNotEnabled()
        if not self.verify(code, user.totp_secret):
            raise InvalidTOTP("invalid TOTP code")
        if not user.totp_enabled:
            self._store.enable_totp(user.id)
            logger.info("TOTP confirmed and enabled for user_id=%s", user.id)
