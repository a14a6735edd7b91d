from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from advault import __version__ as APP_VERSION
from advault.core.runtime import LibraryRuntime
from advault.server.core.errors import register_exception_handlers
from advault.server.core.middleware_ex import RequestIDMiddleware, TimingMiddleware
from advault.server.routes.assets import router as assets_router
from advault.studio.core.library import AssetLibrary
from advault.studio.core.thumbnail_service import ThumbnailService

LOGGER = logging.getLogger(__name__)


def create_app(runtime: Optional[LibraryRuntime] = None) -> FastAPI:
    """Application factory used by both CLI launches and ASGI servers.

    A runtime that is already started is left running on shutdown; one the
    app had to start itself is shut down with it.
    """
    runtime = runtime or LibraryRuntime()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_runtime = not runtime.started
        runtime.init()
        app.state.library = AssetLibrary(runtime)
        LOGGER.info("Asset library API ready (db=%s)", runtime.db_path)
        try:
            yield
        finally:
            if owns_runtime:
                runtime.shutdown()

    app = FastAPI(title="AdVault", version=APP_VERSION, lifespan=lifespan)
    app.state.version = APP_VERSION
    app.state.runtime = runtime

    app.add_middleware(TimingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)
    app.include_router(assets_router)

    runtime.thumb_root.mkdir(parents=True, exist_ok=True)
    app.mount(
        ThumbnailService.URL_PREFIX,
        StaticFiles(directory=str(runtime.thumb_root)),
        name="thumbnails",
    )

    @app.get("/health", tags=["System"], summary="Simple health probe")
    async def core_health():
        return {"status": "ok", "version": APP_VERSION, "started": runtime.started}

    return app
