"""
api/responses.py -- The error envelope every failing response uses.

    {"error": "<message>", "details": <optional>}

Exception handlers in api/main.py call error_response(); so do the few routes
that need to attach headers or cookies to an error (the OAuth callback).
"""

from typing import Any, Optional

from fastapi.responses import JSONResponse

from api.models import ErrorResponse
from core.errors import AppError


def error_response(status_code: int, message: str, details: Optional[Any] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message, details=details).model_dump(exclude_none=True),
    )


def app_error_response(exc: AppError) -> JSONResponse:
    return error_response(exc.status_code, exc.message, exc.details)
