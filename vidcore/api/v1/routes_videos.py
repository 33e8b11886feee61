from __future__ import annotations

import os
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile, status
from fastapi.responses import FileResponse

from vidcore.api import deps
from vidcore.core.config import Settings
from vidcore.core.errors import IngestionFailed, NotFound, OwnershipViolation, StorageWriteFailed
from vidcore.core.logging import get_logger
from vidcore.services.ingest_service import UploadMeta, record_snapshot

from . import schemas


router = APIRouter(prefix="/videos", tags=["videos"])
logger = get_logger(component="routes_videos")


def _upload_size(upload: UploadFile) -> int:
    if upload.size is not None:
        return upload.size
    handle = upload.file
    handle.seek(0, os.SEEK_END)
    size = handle.tell()
    handle.seek(0)
    return size


def _lookup_error(exc: Exception) -> HTTPException:
    if isinstance(exc, OwnershipViolation):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="ownership_violation")
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="video_not_found")


@router.post("/upload", response_model=schemas.VideoResponse, status_code=status.HTTP_201_CREATED)
async def upload_video(
    service: deps.IngestServiceDependency,
    context: deps.AuthDependency,
    file: UploadFile = File(...),
    title: Optional[str] = Form(default=None),
    settings: Settings = Depends(deps.get_app_settings),
) -> schemas.VideoResponse:
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="filename_required")

    size_bytes = _upload_size(file)
    if size_bytes > settings.max_upload_size_bytes:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="upload_too_large")

    meta = UploadMeta(
        original_filename=file.filename,
        mime_type=file.content_type,
        size_bytes=size_bytes,
        title=title or None,
    )
    try:
        record = await service.ingest(owner_id=context.owner_id, payload=file.file, meta=meta)
    except StorageWriteFailed as exc:
        logger.error("upload_storage_failed", owner_id=context.owner_id, error=str(exc))
        raise HTTPException(status_code=status.HTTP_507_INSUFFICIENT_STORAGE, detail="storage_write_failed") from exc
    except IngestionFailed as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "ingestion_failed", "record_id": exc.record_id, "reason": exc.reason},
        ) from exc
    finally:
        await file.close()

    return schemas.VideoResponse(video=schemas.VideoRecord(**record_snapshot(record)))


@router.get("", response_model=schemas.VideoListResponse)
async def list_videos(service: deps.IngestServiceDependency, context: deps.AuthDependency) -> schemas.VideoListResponse:
    records = await service.list_records(owner_id=context.owner_id)
    return schemas.VideoListResponse(videos=[schemas.VideoRecord(**record_snapshot(record)) for record in records])


@router.get("/{record_id}", response_model=schemas.VideoResponse)
async def get_video(
    record_id: str,
    service: deps.IngestServiceDependency,
    context: deps.AuthDependency,
) -> schemas.VideoResponse:
    try:
        record = await service.get_record(owner_id=context.owner_id, record_id=record_id)
    except (NotFound, OwnershipViolation) as exc:
        raise _lookup_error(exc) from exc
    return schemas.VideoResponse(video=schemas.VideoRecord(**record_snapshot(record)))


@router.get("/{record_id}/raw", response_class=FileResponse)
async def get_video_raw(
    record_id: str,
    service: deps.IngestServiceDependency,
    context: deps.AuthDependency,
) -> FileResponse:
    try:
        path, mime_type = await service.media_path(owner_id=context.owner_id, record_id=record_id)
    except (NotFound, OwnershipViolation) as exc:
        raise _lookup_error(exc) from exc
    return FileResponse(path, media_type=mime_type or "application/octet-stream")


@router.get("/{record_id}/thumbnails/{index}")
async def get_video_thumbnail(
    record_id: str,
    index: int,
    service: deps.IngestServiceDependency,
    context: deps.AuthDependency,
) -> Response:
    try:
        payload = await service.read_thumbnail(owner_id=context.owner_id, record_id=record_id, index=index)
    except OwnershipViolation as exc:
        raise _lookup_error(exc) from exc
    except NotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="thumbnail_not_found") from exc
    return Response(content=payload, media_type="image/jpeg")


__all__ = ["router"]
