"""
api/routes/files.py -- File upload and download for the authenticated user.

Routes:
  POST /files/upload               -- multipart upload (field "file"); 201
  GET  /files                      -- the caller's files, by name
  GET  /files/{file_id}/download   -- stream the file back as an attachment

Uploads above MAX_UPLOAD_BYTES are rejected with 400 and nothing is kept.
Another user's file is a 404.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import FileResponse

from api.models import FileOut
from auth.dependencies import get_auth_context
from auth.models import AuthContext
from core.errors import NotFound
from files.storage import FileStorage

router = APIRouter()


@router.post("/files/upload", response_model=FileOut, status_code=201)
def upload_file(
    request: Request,
    file: UploadFile = File(...),
    auth: AuthContext = Depends(get_auth_context),
) -> FileOut:
    storage: FileStorage = request.app.state.file_storage
    record = storage.save(auth.user_id, file.filename, file.content_type, file.file)
    return FileOut.from_record(record)


@router.get("/files", response_model=list[FileOut])
def list_files(request: Request, auth: AuthContext = Depends(get_auth_context)) -> list[FileOut]:
    storage: FileStorage = request.app.state.file_storage
    return [FileOut.from_record(r) for r in storage.list_for(auth.user_id)]


@router.get("/files/{file_id}/download")
def download_file(request: Request, file_id: str, auth: AuthContext = Depends(get_auth_context)) -> FileResponse:
    storage: FileStorage = request.app.state.file_storage
    record = storage.get(file_id, auth.user_id)
    if record is None:
        raise NotFound("file not found")
    return FileResponse(record.path, media_type=record.mime_type, filename=record.name)
