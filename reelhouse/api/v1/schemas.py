from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = Field(default="ok", description="Health status indicator.")
    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class EnvCheckResponse(BaseModel):
    ffmpeg: bool
    ffprobe: bool


class VideoCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255, json_schema_extra={"example": "Boots on the trail"})
    description: Optional[str] = Field(default=None, json_schema_extra={"example": "Morning hike, 4k"})


class VideoResponse(BaseModel):
    id: str
    user_id: str
    title: str
    description: Optional[str]
    thumbnail_url: Optional[str]
    video_url: Optional[str] = Field(
        default=None,
        description="Time-limited signed URL for the stored video, or null before an upload.",
    )
    created_at: datetime
    updated_at: datetime


class VideoListResponse(BaseModel):
    videos: List[VideoResponse]


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[Any] = None


__all__ = [
    "HealthResponse",
    "EnvCheckResponse",
    "VideoCreateRequest",
    "VideoResponse",
    "VideoListResponse",
    "ErrorResponse",
]
