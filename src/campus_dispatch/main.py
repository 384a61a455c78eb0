"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import health, history, locations, missions, waypoints
from .config import settings
from .services.runtime import DispatchRuntime, build_runtime

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(runtime: DispatchRuntime | None = None, *, drive_renderer: bool = True) -> FastAPI:
    """Build the API.

    A prepared ``runtime`` may be injected; otherwise one is assembled from
    settings at startup. With ``drive_renderer`` the simulated vehicle is
    advanced by a background task for the lifetime of the app.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _configure_logging()
        app.state.runtime = runtime or build_runtime()
        renderer_task: asyncio.Task | None = None
        if drive_renderer:
            renderer_task = asyncio.create_task(
                app.state.runtime.renderer.run(settings.renderer_tick_seconds, settings.renderer_time_scale)
            )
        logger.info(f"{settings.app_name} started")
        try:
            yield
        finally:
            if renderer_task is not None:
                renderer_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await renderer_task
            await app.state.runtime.aclose()
            logger.info(f"{settings.app_name} stopped")

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    if settings.frontend_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.frontend_allowed_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/")
    def root():
        """Service banner with pointers to the main endpoints."""
        return {
            "service": settings.app_name,
            "status": "running",
            "mission": f"{settings.api_prefix}/mission",
            "health": f"{settings.api_prefix}/health",
            "docs": "/docs",
        }

    for router in (
        health.router,
        locations.router,
        missions.router,
        missions.service_router,
        waypoints.router,
        history.router,
    ):
        app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
