"""
notes/models.py -- Domain dataclass for notes.

Pure data container. Validation rules live in notes/validation.py and
persistence in notes/store.py.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Note:
    """A user's note. owner_id scopes every read and write.

    id is None before the record is written to the database.
    """

    owner_id: int
    title: str
    content: str
    id: int | None = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""
