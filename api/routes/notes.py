"""
api/routes/notes.py -- Notes CRUD for the authenticated user.

Routes:
  GET    /notes            -- paginated list, newest first (?page=, ?limit=)
  POST   /notes            -- create; 201
  GET    /notes/{note_id}  -- fetch one
  PUT    /notes/{note_id}  -- replace title + content
  DELETE /notes/{note_id}  -- delete; 204

Every route requires a bearer token. Notes are scoped to the caller: another
user's note is reported as 404, exactly like a missing one.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response

from api.models import NoteIn, NoteListResponse, NoteOut
from auth.dependencies import get_auth_context
from auth.models import AuthContext
from core.errors import NotFound
from notes.models import Note
from notes.store import NoteStore

router = APIRouter()

_NOT_FOUND = "note not found"


def _store(request: Request) -> NoteStore:
    return request.app.state.note_store


@router.get("/notes", response_model=NoteListResponse)
def list_notes(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    auth: AuthContext = Depends(get_auth_context),
) -> NoteListResponse:
    items, total = _store(request).list_page(auth.user_id, page, limit)
    return NoteListResponse(
        items=[NoteOut.from_note(n) for n in items],
        page=page,
        limit=limit,
        total=total,
    )


@router.post("/notes", response_model=NoteOut, status_code=201)
def create_note(
    request: Request,
    body: NoteIn,
    auth: AuthContext = Depends(get_auth_context),
) -> NoteOut:
    store = _store(request)
    note_id = store.create(Note(owner_id=auth.user_id, title=body.title, content=body.content))
    note = store.get(note_id, auth.user_id)
    return NoteOut.from_note(note)


@router.get("/notes/{note_id}", response_model=NoteOut)
def get_note(request: Request, note_id: int, auth: AuthContext = Depends(get_auth_context)) -> NoteOut:
    note = _store(request).get(note_id, auth.user_id)
    if note is None:
        raise NotFound(_NOT_FOUND)
    return NoteOut.from_note(note)


@router.put("/notes/{note_id}", response_model=NoteOut)
def update_note(
    request: Request,
    note_id: int,
    body: NoteIn,
    auth: AuthContext = Depends(get_auth_context),
) -> NoteOut:
    note = _store(request).update(note_id, auth.user_id, body.title, body.content)
    if note is None:
        raise NotFound(_NOT_FOUND)
    return NoteOut.from_note(note)


@router.delete("/notes/{note_id}", status_code=204)
def delete_note(request: Request, note_id: int, auth: AuthContext = Depends(get_auth_context)) -> Response:
    if not _store(request).delete(note_id, auth.user_id):
        raise NotFound(_NOT_FOUND)
    return Response(status_code=204)
