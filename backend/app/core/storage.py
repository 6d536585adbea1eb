"""Local filesystem blob storage for avatars and message attachments."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Final, Iterable
from uuid import uuid4

from fastapi import HTTPException, UploadFile, status

from app.config import get_settings

settings = get_settings()

logger = logging.getLogger(__name__)

_CHUNK_SIZE: Final[int] = 1024 * 1024  # 1 MiB


@dataclass(slots=True)
class StoredBlob:
    """Represents a file persisted by the storage backend."""

    public_id: str
    url: str
    file_name: str
    content_type: str | None
    file_size: int


def _media_root() -> Path:
    root = settings.media_root
    root.mkdir(parents=True, exist_ok=True)
    return root


def build_blob_url(public_id: str) -> str:
    base = settings.media_base_url.rstrip("/")
    return f"{base}/{public_id}"


async def store_blob(upload: UploadFile, folder: str, *, images_only: bool = False) -> StoredBlob:
    """Persist an uploaded file under ``folder`` and return its public identifier."""

    if images_only and upload.content_type and not upload.content_type.startswith("image/"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Avatar must be an image file",
        )

    target_dir = _media_root() / folder
    target_dir.mkdir(parents=True, exist_ok=True)

    original_name = upload.filename or "upload.bin"
    file_name = f"{uuid4().hex}{Path(original_name).suffix}"
    absolute_path = target_dir / file_name

    total_size = 0
    try:
        with absolute_path.open("wb") as buffer:
            while True:
                chunk = await upload.read(_CHUNK_SIZE)
                if not chunk:
                    break
                total_size += len(chunk)
                if total_size > settings.max_upload_size:
                    raise HTTPException(
                        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                        detail="File exceeds allowed size",
                    )
                buffer.write(chunk)
    except HTTPException:
        if absolute_path.exists():
            absolute_path.unlink()
        raise
    finally:
        await upload.close()

    public_id = f"{folder}/{file_name}"
    return StoredBlob(
        public_id=public_id,
        url=build_blob_url(public_id),
        file_name=original_name,
        content_type=upload.content_type,
        file_size=total_size,
    )


def delete_blobs(public_ids: Iterable[str]) -> int:
    """Remove stored blobs, ignoring ones that are already gone."""

    removed = 0
    for public_id in public_ids:
        try:
            path = resolve_blob(public_id)
        except HTTPException:
            continue
        try:
            path.unlink()
        except OSError:
            logger.warning("Failed to delete blob %s", public_id, exc_info=logger.isEnabledFor(logging.DEBUG))
            continue
        removed += 1
    return removed


def resolve_blob(public_id: str) -> Path:
    """Return an absolute path for a stored blob."""

    root = _media_root().resolve()
    candidate = (root / public_id).resolve()
    if not candidate.is_relative_to(root):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid file path")
    if not candidate.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    return candidate
