from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reelhouse.core.auth import AuthContext, get_auth_context
from reelhouse.core.config import Settings, get_settings
from reelhouse.core.storage import Storage
from reelhouse.media.faststart import StreamOptimizer
from reelhouse.media.geometry import GeometryInspector
from reelhouse.services.video_service import VideoService


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    session_factory = request.app.state.session_factory
    if not isinstance(session_factory, async_sessionmaker):  # pragma: no cover
        raise RuntimeError("session_factory_not_configured")
    async with session_factory() as session:
        yield session


def get_storage(request: Request) -> Storage:
    storage: Storage = request.app.state.storage
    return storage


def get_inspector(request: Request) -> GeometryInspector:
    return request.app.state.inspector


def get_optimizer(request: Request) -> StreamOptimizer:
    return request.app.state.optimizer


def get_app_settings() -> Settings:
    return get_settings()


async def get_video_service(
    session: AsyncSession = Depends(get_session),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
    inspector: GeometryInspector = Depends(get_inspector),
    optimizer: StreamOptimizer = Depends(get_optimizer),
) -> AsyncIterator[VideoService]:
    service = VideoService(settings, storage, session, inspector=inspector, optimizer=optimizer)
    yield service


VideoServiceDependency = Annotated[VideoService, Depends(get_video_service)]
AuthDependency = Annotated[AuthContext, Depends(get_auth_context)]


__all__ = [
    "get_session",
    "get_storage",
    "get_inspector",
    "get_optimizer",
    "get_app_settings",
    "get_video_service",
    "VideoServiceDependency",
    "AuthDependency",
]
