"""
notes/store.py -- SQLAlchemy-backed persistence layer for notes.

Uses SQLAlchemy Core (not ORM) so the Note dataclass in notes/models.py
remains the authoritative domain representation. Swapping SQLite for
PostgreSQL is a connection string change, not a rewrite.

Pattern: Repository + Data Mapper. NoteStore is the repository; _row_to_note
is the mapper. Route handlers never touch SQL directly.

Ownership: every query filters on owner_id. A note that exists but belongs to
someone else is indistinguishable from a note that does not exist.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = NoteStore("sqlite:///notebox.db")
    note_id = store.create(Note(owner_id=1, title="Groceries", content="milk, eggs"))
    items, total = store.list_page(owner_id=1, page=1, limit=10)
    store.close()
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from notes.models import Note

_DEFAULT_DB_URL = "sqlite:///notebox.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_notes = Table(
    "notes",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("owner_id", Integer, nullable=False),
    Column("title", String(100), nullable=False),
    Column("content", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Index("ix_notes_owner_id", "owner_id"),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class NoteStore:
    """Repository for Note entities, always scoped to an owner."""

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    def create(self, note: Note) -> int:
        """Insert a note and return its ID."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _notes.insert().values(
                    owner_id=note.owner_id,
                    title=note.title,
                    content=note.content,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get(self, note_id: int, owner_id: int) -> Note | None:
        """Return the note if it exists and belongs to owner_id, else None."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _notes.select().where((_notes.c.id == note_id) & (_notes.c.owner_id == owner_id))
            ).fetchone()
        return _row_to_note(row) if row is not None else None

    def list_page(self, owner_id: int, page: int, limit: int) -> tuple[list[Note], int]:
        """Return one page of the owner's notes (newest first) and the total count."""
        offset = (page - 1) * limit
        with self.engine.connect() as conn:
            total = conn.execute(
                select(func.count()).select_from(_notes).where(_notes.c.owner_id == owner_id)
            ).scalar()
            rows = conn.execute(
                _notes.select()
                .where(_notes.c.owner_id == owner_id)
                .order_by(_notes.c.id.desc())
                .limit(limit)
                .offset(offset)
            ).fetchall()
        return [_row_to_note(r) for r in rows], total or 0

    def update(self, note_id: int, owner_id: int, title: str, content: str) -> Note | None:
        """Replace title and content. Returns the updated note, or None if not found."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _notes.update()
                .where((_notes.c.id == note_id) & (_notes.c.owner_id == owner_id))
                .values(title=title, content=content, updated_at=_now_iso())
            )
            conn.commit()
        if result.rowcount == 0:
            return None
        return self.get(note_id, owner_id)

    def delete(self, note_id: int, owner_id: int) -> bool:
        """Delete a note. Returns True if deleted, False if not found."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _notes.delete().where((_notes.c.id == note_id) & (_notes.c.owner_id == owner_id))
            )
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


def _row_to_note(row) -> Note:
    return Note(
        id=row.id,
        owner_id=row.owner_id,
        title=row.title,
        content=row.content,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
