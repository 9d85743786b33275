"""
notes/validation.py -- Content rules shared by the JSON API and the HTML UI.

  title    3-100 characters, and must not contain the word "test" in any case
  content  5-5000 characters

The JSON API enforces the same rules through pydantic field constraints in
api/models.py (so clients get a 400 with per-field details); the UI forms call
validate_note() directly and show the first problem as a flash message.
"""

from __future__ import annotations

from core.errors import ValidationError

TITLE_MIN = 3
TITLE_MAX = 100
CONTENT_MIN = 5
CONTENT_MAX = 5000
_FORBIDDEN_TITLE_WORD = "test"


def title_is_allowed(title: str) -> bool:
    return _FORBIDDEN_TITLE_WORD not in title.lower()


def validate_note(title: str, content: str) -> None:
    problems: list[dict] = []
    if not TITLE_MIN <= len(title) <= TITLE_MAX:
        problems.append({"field": "title", "message": f"must be {TITLE_MIN}-{TITLE_MAX} characters"})
    elif not title_is_allowed(title):
        problems.append({"field": "title", "message": f"must not contain '{_FORBIDDEN_TITLE_WORD}'"})
    if not CONTENT_MIN <= len(content) <= CONTENT_MAX:
        problems.append({"field": "content", "message": f"must be {CONTENT_MIN}-{CONTENT_MAX} characters"})
    if problems:
        raise ValidationError(details=problems)
