from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from reelhouse.api.v1 import get_api_router
from reelhouse.api.v1.schemas import ErrorResponse
from reelhouse.core.config import get_settings
from reelhouse.core.db import create_engine, create_schema, create_session_factory
from reelhouse.core.errors import ProcessingError, ReelhouseError
from reelhouse.core.logging import configure_logging, get_logger
from reelhouse.core.storage import Storage, get_storage
from reelhouse.media.faststart import FFmpegFaststartOptimizer, StreamOptimizer
from reelhouse.media.geometry import FFprobeInspector, GeometryInspector

logger = get_logger(component="api")


async def _handle_reelhouse_error(request: Request, exc: ReelhouseError) -> JSONResponse:
    if isinstance(exc, ProcessingError):
        logger.error("request_failed", path=request.url.path, error=exc.code, message=exc.message, stderr=exc.stderr)
    elif exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.code, message=exc.message)
    else:
        logger.info("request_rejected", path=request.url.path, error=exc.code, message=exc.message)
    body = ErrorResponse(error=exc.code, detail=exc.message)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


def create_app(
    *,
    storage: Storage | None = None,
    inspector: GeometryInspector | None = None,
    optimizer: StreamOptimizer | None = None,
) -> FastAPI:
    settings = get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    configure_logging(level=log_level)

    storage = storage or get_storage(settings)
    inspector = inspector or FFprobeInspector(settings.ffprobe_binary, timeout_s=settings.media_tool_timeout_s)
    optimizer = optimizer or FFmpegFaststartOptimizer(settings.ffmpeg_binary, timeout_s=settings.media_tool_timeout_s)
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings.assets_root.mkdir(parents=True, exist_ok=True)
        if settings.database_url.startswith("sqlite"):
            await create_schema(engine)
        app.state.settings = settings
        app.state.storage = storage
        app.state.inspector = inspector
        app.state.optimizer = optimizer
        app.state.engine = engine
        app.state.session_factory = session_factory
        try:
            yield
        finally:
            await engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        lifespan=lifespan,
        openapi_url="/openapi.json",
        docs_url="/docs",
    )
    app.add_exception_handler(ReelhouseError, _handle_reelhouse_error)
    app.include_router(get_api_router())
    return app


__all__ = ["create_app"]
