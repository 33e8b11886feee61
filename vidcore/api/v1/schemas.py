from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = Field(default="ok", description="Health status indicator.")
    service: str
    version: str
    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class EnvCheckResponse(BaseModel):
    ffmpeg: bool
    ffprobe: bool


class VideoRecord(BaseModel):
    id: str = Field(..., json_schema_extra={"example": "3f1c9a0e5d7b4e6c8a2b1d0f9e8c7b6a"})
    owner_id: str
    title: str
    location: str = Field(..., description="Opaque storage reference of the uploaded bytes.")
    mime_type: Optional[str] = Field(default=None, json_schema_extra={"example": "video/mp4"})
    size_bytes: int
    duration_seconds: float = Field(default=0.0, description="0 when the duration could not be probed.")
    thumbnail_locations: List[str] = Field(default_factory=list)
    media_info: Optional[Dict[str, Any]] = None
    status: str = Field(description="uploaded | processing | ready | failed")
    failure_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class VideoResponse(BaseModel):
    video: VideoRecord


class VideoListResponse(BaseModel):
    videos: List[VideoRecord]


__all__ = [
    "HealthResponse",
    "EnvCheckResponse",
    "VideoRecord",
    "VideoResponse",
    "VideoListResponse",
]
