from __future__ import annotations

import asyncio
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from reelhouse.core.config import Settings
from reelhouse.core.errors import ForbiddenError, InvalidRequestError, NotFoundError, StorageError
from reelhouse.core.logging import bound_context, get_logger
from reelhouse.core.storage import Storage
from reelhouse.db.models import Video
from reelhouse.media.faststart import StreamOptimizer, output_path_for
from reelhouse.media.geometry import GeometryInspector
from reelhouse.media.staging import claim, discard, generate_staged_name, scoped_file, write_stream


@dataclass(slots=True)
class UploadRequest:
    """A single video upload as received from the transport layer."""

    video_id: str | None
    user_id: str
    stream: BinaryIO | None
    content_type: str | None
    size_bytes: int | None


class VideoService:
    def __init__(
        self,
        settings: Settings,
        storage: Storage,
        session: AsyncSession,
        *,
        inspector: GeometryInspector,
        optimizer: StreamOptimizer,
    ):
        self.settings = settings
        self.storage = storage
        self.session = session
        self.inspector = inspector
        self.optimizer = optimizer
        self.logger = get_logger(component="video_service")

    async def create_video(self, *, user_id: str, title: str, description: str | None) -> Video:
        video = Video(id=str(uuid4()), user_id=user_id, title=title, description=description)
        self.session.add(video)
        await self.session.commit()
        await self.session.refresh(video)
        self.logger.info("video_created", video_id=video.id, user_id=user_id)
        return video

    async def get_video(self, video_id: str) -> Video | None:
        return await self.session.get(Video, video_id)

    async def list_videos(self, user_id: str) -> list[Video]:
        stmt = select(Video).where(Video.user_id == user_id).order_by(Video.created_at.desc(), Video.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_owned_video(self, video_id: str | None, user_id: str) -> Video:
        parsed_id = _parse_video_id(video_id)
        video = await self.get_video(parsed_id)
        if video is None:
            raise NotFoundError("Couldn't find video")
        if video.user_id != user_id:
            raise ForbiddenError("Wrong user")
        return video

    def signed_view(self, video: Video) -> dict[str, Any]:
        """Render ``video`` for a response, swapping the stored key for a presigned URL.

        The record itself is left untouched so the signed URL is never persisted.
        """
        video_url = None
        if video.video_url:
            video_url = self.storage.presign_get(video.video_url, expires_s=self.settings.presign_expires_s).url
        return {
            "id": video.id,
            "user_id": video.user_id,
            "title": video.title,
            "description": video.description,
            "thumbnail_url": video.thumbnail_url,
            "video_url": video_url,
            "created_at": video.created_at,
            "updated_at": video.updated_at,
        }

    async def upload_video(self, request: UploadRequest) -> dict[str, Any]:
        """Validate, fast-start, and store an uploaded video, then point its record at the new object."""
        video_id = _parse_video_id(request.video_id)

        with bound_context(video_id=video_id, user_id=request.user_id):
            if request.stream is None:
                raise InvalidRequestError("Video is not a file")

            ceiling = self.settings.max_video_upload_bytes
            if request.size_bytes is None or request.size_bytes > ceiling:
                raise InvalidRequestError(f"Video is larger than {_format_bytes(ceiling)}")

            video = await self.get_video(video_id)
            if video is None:
                raise NotFoundError("Video not found")
            if video.user_id != request.user_id:
                raise ForbiddenError("Wrong user")

            if request.content_type != self.settings.allowed_video_type:
                raise InvalidRequestError("Unsupported video format")

            self.logger.info("video_upload_started", size_bytes=request.size_bytes)
            key = await self._stage_and_store(request.stream, request.content_type)
            await self._point_record_at(video, key)
            self.logger.info("video_upload_completed", key=key)
            return self.signed_view(video)

    async def _stage_and_store(self, stream: BinaryIO, content_type: str) -> str:
        file_name = generate_staged_name(content_type)
        staged_path = Path(self.settings.assets_root) / file_name

        with ExitStack() as cleanup:
            cleanup.enter_context(scoped_file(claim(staged_path)))
            await asyncio.to_thread(write_stream, stream, staged_path)

            geometry = await self.inspector.inspect(staged_path)

            cleanup.enter_context(scoped_file(output_path_for(staged_path)))
            processed_path = await self.optimizer.optimize(staged_path)
            if processed_path != output_path_for(staged_path):
                cleanup.enter_context(scoped_file(processed_path))
            discard(staged_path)

            key = f"{geometry.value}/{file_name}"
            await asyncio.to_thread(self.storage.put_file, key, processed_path, content_type=content_type)
            discard(processed_path)

        self.logger.info("video_object_stored", key=key, geometry=geometry.value)
        return key

    async def _point_record_at(self, video: Video, key: str) -> None:
        video.video_url = key
        try:
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            self.logger.error("video_record_update_failed", key=key)
            await asyncio.to_thread(self._delete_orphan, key)
            raise
        await self.session.refresh(video)

    def _delete_orphan(self, key: str) -> None:
        try:
            self.storage.delete(key)
        except StorageError as exc:
            self.logger.warning("orphaned_object_left_behind", key=key, error=str(exc))
        else:
            self.logger.info("orphaned_object_deleted", key=key)


def _parse_video_id(raw: str | None) -> str:
    if not raw:
        raise InvalidRequestError("Invalid video ID")
    try:
        return str(UUID(raw))
    except ValueError as exc:
        raise InvalidRequestError("Invalid video ID") from exc


def _format_bytes(size: int) -> str:
    for unit in ("B", "KB", "MB"):
        if size < 1024 or size % 1024:
            return f"{size}{unit}"
        size //= 1024
    return f"{size}GB"


__all__ = ["UploadRequest", "VideoService"]
