from __future__ import annotations

import os

from fastapi import APIRouter, Request, status
from starlette.datastructures import UploadFile

from reelhouse.api import deps
from reelhouse.core.logging import get_logger
from reelhouse.services.video_service import UploadRequest

from . import schemas


router = APIRouter(prefix="/videos", tags=["videos"])
logger = get_logger(component="videos_api")

ERROR_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": schemas.ErrorResponse},
    status.HTTP_403_FORBIDDEN: {"model": schemas.ErrorResponse},
    status.HTTP_404_NOT_FOUND: {"model": schemas.ErrorResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": schemas.ErrorResponse},
}


def _part_size(part: UploadFile) -> int:
    if part.size is not None:
        return part.size
    position = part.file.tell()
    part.file.seek(0, os.SEEK_END)
    size = part.file.tell()
    part.file.seek(position)
    return size


@router.post("", response_model=schemas.VideoResponse, status_code=status.HTTP_201_CREATED)
async def create_video(
    payload: schemas.VideoCreateRequest,
    service: deps.VideoServiceDependency,
    context: deps.AuthDependency,
) -> schemas.VideoResponse:
    video = await service.create_video(user_id=context.user_id, title=payload.title, description=payload.description)
    return schemas.VideoResponse(**service.signed_view(video))


@router.get("", response_model=schemas.VideoListResponse)
async def list_videos(service: deps.VideoServiceDependency, context: deps.AuthDependency) -> schemas.VideoListResponse:
    videos = await service.list_videos(context.user_id)
    return schemas.VideoListResponse(videos=[schemas.VideoResponse(**service.signed_view(video)) for video in videos])


@router.get("/{video_id}", response_model=schemas.VideoResponse, responses=ERROR_RESPONSES)
async def get_video(
    video_id: str,
    service: deps.VideoServiceDependency,
    context: deps.AuthDependency,
) -> schemas.VideoResponse:
    video = await service.get_owned_video(video_id, context.user_id)
    return schemas.VideoResponse(**service.signed_view(video))


@router.post("/{video_id}/video", response_model=schemas.VideoResponse, responses=ERROR_RESPONSES)
async def upload_video(
    video_id: str,
    request: Request,
    service: deps.VideoServiceDependency,
    context: deps.AuthDependency,
) -> schemas.VideoResponse:
    """Accept a multipart upload (field ``video``) and store a fast-start copy for the record."""
    logger.info("uploading_video", video_id=video_id, user_id=context.user_id)

    async with request.form() as form:
        part = form.get("video")
        if isinstance(part, UploadFile):
            upload = UploadRequest(
                video_id=video_id,
                user_id=context.user_id,
                stream=part.file,
                content_type=part.content_type,
                size_bytes=_part_size(part),
            )
        else:
            upload = UploadRequest(
                video_id=video_id,
                user_id=context.user_id,
                stream=None,
                content_type=None,
                size_bytes=None,
            )
        view = await service.upload_video(upload)

    return schemas.VideoResponse(**view)


__all__ = ["router"]
