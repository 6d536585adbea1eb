"""Serve blobs written by the local storage backend."""

from fastapi import APIRouter
from fastapi.responses import FileResponse

from app.core.storage import resolve_blob

router = APIRouter()


@router.get("/{public_id:path}", response_class=FileResponse)
def read_media(public_id: str) -> FileResponse:
    return FileResponse(resolve_blob(public_id))
