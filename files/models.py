"""
files/models.py -- Domain dataclass for uploaded files.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class StoredFile:
    """Metadata for one uploaded file.

    path is the on-disk location and is never sent to clients.
    """

    id: str
    owner_id: int
    name: str
    path: str
    size: int
    mime_type: str
