"""
files/registry.py -- Where file metadata lives.

FileRegistry is the interface FileStorage depends on. InMemoryFileRegistry is
the only implementation today: a dict behind a lock, lost on restart. A
database-backed registry can replace it without touching FileStorage or the
routes.
"""

from __future__ import annotations

import threading
from typing import Protocol

from files.models import StoredFile


class FileRegistry(Protocol):
    def add(self, record: StoredFile) -> None: ...

    def get(self, file_id: str) -> StoredFile | None: ...

    def list_for(self, owner_id: int) -> list[StoredFile]: ...


class InMemoryFileRegistry:
    """Thread-safe in-process registry.

    Route handlers run in Starlette's thread pool, so every access takes the
    lock. Reads return copies of the internal list, never the dict itself.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: dict[str, StoredFile] = {}

    def add(self, record: StoredFile) -> None:
        with self._lock:
            self._records[record.id] = record

    def get(self, file_id: str) -> StoredFile | None:
        with self._lock:
            return self._records.get(file_id)

    def list_for(self, owner_id: int) -> list[StoredFile]:
        with self._lock:
            return sorted(
                (r for r in self._records.values() if r.owner_id == owner_id),
                key=lambda r: r.name,
            )
