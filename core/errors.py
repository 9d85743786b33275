"""
core/errors.py -- Application error taxonomy.

Every failure a request can end in maps to one of four kinds:

  ValidationError  400  malformed caller input
  Unauthorized     401  missing/invalid credential, bad TOTP, OAuth state mismatch
  NotFound         404  the addressed resource does not exist (or is not yours)
  Internal         500  anything unexpected

Errors are terminal for the request: nothing in the service layer retries.
api/main.py turns any AppError into the {"error": ..., "details": ...}
envelope, and the web UI turns them into flash messages.

Layer rule: core/ is the kernel. No imports from other project packages.
"""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base class for failures that carry their own HTTP status and message.

    message is what the client sees. Keep it free of internals -- the
    exception chain (raise ... from exc) is where the real cause goes.
    """

    status_code: int = 500
    message: str = "internal server error"

    def __init__(self, message: str | None = None, details: Any = None) -> None:
        if message is not None:
            self.message = message
        self.details = details
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    message = "validation failed"


class Unauthorized(AppError):
    status_code = 401
    message = "unauthorized"


class NotFound(AppError):
    status_code = 404
    message = "not found"


class Internal(AppError):
    status_code = 500
    message = "internal server error"
