"""
API request and response models for the Notebox REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py,
notes/models.py and files/models.py, which own the internal domain
representation. Route handlers map between the two.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import User
from auth.service import EMAIL_PATTERN, PASSWORD_MAX_LENGTH, PASSWORD_MIN_LENGTH
from files.models import StoredFile
from notes.models import Note
from notes.validation import CONTENT_MAX, CONTENT_MIN, TITLE_MAX, TITLE_MIN, title_is_allowed

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Envelope returned on every 4xx/5xx response.

    details is omitted from the JSON when there is nothing to add.
    """

    model_config = ConfigDict(frozen=True)

    error: str
    details: Optional[Any] = None


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str


# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register.

    Only the email is stripped. The password is hashed exactly as sent.
    """

    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class LoginRequest(BaseModel):
    """Request body for POST /auth/login.

    totp is required only for accounts with the second factor enabled; the
    service decides, not the schema.
    """

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)
    totp: Optional[str] = Field(default=None, max_length=16)


class TOTPVerifyRequest(BaseModel):
    """Request body for POST /auth/totp/verify."""

    token: str = Field(min_length=1, max_length=16)


# ---------------------------------------------------------------------------
# Auth -- responses
# ---------------------------------------------------------------------------


class RegisterResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    email: str


class LoginResponse(BaseModel):
    """Response for POST /auth/login and the OAuth callbacks."""

    model_config = ConfigDict(frozen=True)

    token: str
    token_type: str = "bearer"
    expires_in: int


class UserOut(BaseModel):
    """Public view of a User. Password hash and TOTP secret never leave the server."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    totp_enabled: bool
    oauth_provider: Optional[str] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            email=user.email,
            totp_enabled=user.totp_enabled,
            oauth_provider=user.oauth_provider,
            created_at=user.created_at or "",
            updated_at=user.updated_at or "",
        )


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: UserOut


class TOTPEnableResponse(BaseModel):
    """Response for POST /auth/totp/enable. Shown once; the secret is not retrievable later."""

    model_config = ConfigDict(frozen=True)

    secret: str
    uri: str
    qr: str  # data:image/png;base64,...


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------


class NoteIn(BaseModel):
    """Request body for POST /notes and PUT /notes/{id}."""

    title: str = Field(min_length=TITLE_MIN, max_length=TITLE_MAX)
    content: str = Field(min_length=CONTENT_MIN, max_length=CONTENT_MAX)

    @field_validator("title")
    @classmethod
    def title_without_test(cls, value: str) -> str:
        if not title_is_allowed(value):
            raise ValueError("title must not contain 'test'")
        return value


class NoteOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    content: str
    created_at: str
    updated_at: str

    @classmethod
    def from_note(cls, note: Note) -> "NoteOut":
        return cls(
            id=note.id,
            title=note.title,
            content=note.content,
            created_at=note.created_at,
            updated_at=note.updated_at,
        )


class NoteListResponse(BaseModel):
    """Paginated list envelope for GET /notes."""

    model_config = ConfigDict(frozen=True)

    items: list[NoteOut]
    page: int
    limit: int
    total: int


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


class FileOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    size: int
    mime_type: str

    @classmethod
    def from_record(cls, record: StoredFile) -> "FileOut":
        return cls(id=record.id, name=record.name, size=record.size, mime_type=record.mime_type)
