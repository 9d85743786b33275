"""
files/storage.py -- Upload storage on the local filesystem.

Files are written to <root>/<uuid>_<basename>. The client-supplied filename is
reduced to its basename before use, so "../../etc/passwd" is stored as
"<uuid>_passwd" inside root. Durability is whatever the local disk gives;
metadata lives in the FileRegistry.

Usage:
    storage = FileStorage(Path("uploads"), InMemoryFileRegistry(), max_bytes=10 * 1024 * 1024)
    record = storage.save(owner_id=1, filename="a.txt", content_type="text/plain", stream=fp)
    storage.get(record.id, owner_id=1)
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import BinaryIO

from core.errors import ValidationError
from files.models import StoredFile
from files.registry import FileRegistry

logger = logging.getLogger("notebox.files")

_CHUNK = 64 * 1024
_DEFAULT_MIME = "application/octet-stream"


def safe_basename(filename: str | None) -> str:
    """Strip any directory part (POSIX or Windows) from a client filename."""
    name = PureWindowsPath(PurePosixPath(filename or "").name).name
    name = name.strip().lstrip(".")
    return name or "upload"


class FileStorage:
    def __init__(self, root: Path, registry: FileRegistry, max_bytes: int) -> None:
        self.root = root
        self.registry = registry
        self.max_bytes = max_bytes

    def save(self, owner_id: int, filename: str | None, content_type: str | None, stream: BinaryIO) -> StoredFile:
        """Copy stream to disk and register it.

        Raises ValidationError if the upload exceeds max_bytes. A partial file
        is removed whenever the copy does not complete.
        """
        self.root.mkdir(parents=True, exist_ok=True)
        file_id = str(uuid.uuid4())
        name = safe_basename(filename)
        dest = self.root / f"{file_id}_{name}"

        size = 0
        try:
            with dest.open("wb") as out:
                while chunk := stream.read(_CHUNK):
                    size += len(chunk)
                    if size > self.max_bytes:
                        break
                    out.write(chunk)
        except BaseException:
            dest.unlink(missing_ok=True)
            raise
        if size > self.max_bytes:
            dest.unlink(missing_ok=True)
            raise ValidationError("file too large", details={"max_bytes": self.max_bytes})

        record = StoredFile(
            id=file_id,
            owner_id=owner_id,
            name=name,
            path=str(dest),
            size=size,
            mime_type=content_type or _DEFAULT_MIME,
        )
        self.registry.add(record)
        logger.info("Stored file %s (%d bytes) for user_id=%s", file_id, size, owner_id)
        return record

    def get(self, file_id: str, owner_id: int) -> StoredFile | None:
        """Return the record if it exists, belongs to owner_id and is still on disk."""
        record = self.registry.get(file_id)
        if record is None or record.owner_id != owner_id:
            return None
        if not Path(record.path).is_file():
            logger.warning("File %s is registered but missing on disk", file_id)
            return None
        return record

    def list_for(self, owner_id: int) -> list[StoredFile]:
        return self.registry.list_for(owner_id)
