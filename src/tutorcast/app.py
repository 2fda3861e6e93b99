"""FastAPI application factory."""

# Import timezone enforcement (sets TZ=UTC)
import asyncio
from contextlib import asynccontextmanager
from typing import Awaitable, Callable

import structlog
from fastapi import FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from tutorcast.api.routes import videos, webhooks
from tutorcast.core import timezone  # noqa: F401
from tutorcast.core.config import Settings, configure_logging
from tutorcast.core.database import setup_db_session
from tutorcast.services.heygen.client import HeyGenClient
from tutorcast.services.relocation.relocator import AssetRelocator
from tutorcast.services.storage.supabase_client import SupabaseStorageClient
from tutorcast.uow import create_uow_factory
from tutorcast.workers.video_sync_worker import VideoSyncSweeper, run_video_sync_worker

logger = structlog.get_logger()


def create_resilient_worker(
    coro_factory: Callable[[], Awaitable[None]],
    worker_name: str,
    shutdown_event: asyncio.Event,
):
    """Create a worker with automatic restart on failure.

    Args:
        coro_factory: Zero-argument callable returning a fresh worker coroutine
        worker_name: Human-readable worker name for logging
        shutdown_event: Event to signal graceful shutdown

    Returns:
        Initial task handle (will be auto-recreated on crash)
    """
    RESTART_DELAY = 1  # Fixed 1 second delay between restarts

    def on_worker_done(task: asyncio.Task):
        if shutdown_event.is_set():
            logger.info("worker.shutdown_complete", worker=worker_name)
            return

        if task.cancelled():
            logger.info("worker.cancelled", worker=worker_name)
            return

        exc = task.exception()
        if exc:
            logger.error(
                "worker.crashed",
                worker=worker_name,
                error=str(exc),
                error_type=type(exc).__name__,
                retry_in_seconds=RESTART_DELAY,
                exc_info=exc,
            )
        else:
            # Worker stopped cleanly (unexpected for infinite loop workers)
            logger.warning(
                "worker.stopped_unexpectedly",
                worker=worker_name,
                retry_in_seconds=RESTART_DELAY,
            )

        async def restart_worker():
            await asyncio.sleep(RESTART_DELAY)

            # Check again if shutdown was requested during sleep
            if shutdown_event.is_set():
                return

            logger.info("worker.restarting", worker=worker_name)
            new_task = asyncio.create_task(coro_factory())
            new_task.add_done_callback(on_worker_done)

        asyncio.create_task(restart_worker())

    task = asyncio.create_task(coro_factory())
    task.add_done_callback(on_worker_done)
    return task


def build_services(settings: Settings, session_factory) -> dict:
    """Create the provider client, storage client, relocator and sweeper from settings."""
    video_client = HeyGenClient(
        api_key=settings.heygen_api_key,
        api_url=settings.heygen_api_url,
        upload_url=settings.heygen_upload_url,
        timeout=settings.heygen_timeout_seconds,
    )
    storage = SupabaseStorageClient(
        url=settings.supabase_url,
        service_key=settings.supabase_service_key,
        bucket=settings.supabase_bucket,
        timeout=settings.storage_timeout_seconds,
    )
    relocator = AssetRelocator.from_settings(storage, settings)
    sweeper = VideoSyncSweeper(session_factory, video_client, relocator, settings)
    return {
        "video_client": video_client,
        "storage": storage,
        "relocator": relocator,
        "sweeper": sweeper,
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Handles startup and shutdown tasks:
    - Startup: Initialize database session factory, configure logging, build provider and
      storage clients, start the video sync worker (first sweep runs immediately)
    - Shutdown: Stop the worker

    The worker automatically restarts on failure.
    """
    settings: Settings = app.state.settings

    configure_logging(settings)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)

    # Store in app.state for access in routes
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    for name, service in build_services(settings, session_factory).items():
        setattr(app.state, name, service)

    shutdown_event = asyncio.Event()
    sweeper: VideoSyncSweeper = app.state.sweeper

    sync_worker_task = create_resilient_worker(
        lambda: run_video_sync_worker(sweeper, settings.sync_interval_seconds),
        "video_sync",
        shutdown_event,
    )

    logger.info("application.startup", db_url=settings.database_url.split("@")[-1])

    yield

    logger.info("application.shutdown")
    shutdown_event.set()

    sync_worker_task.cancel()
    await asyncio.gather(sync_worker_task, return_exceptions=True)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        settings: Settings to use (loaded from the environment when omitted)

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="Tutorcast Backend API",
        description="Avatar video generation lifecycle for lessons",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register API routers
    app.include_router(videos.router)  # Videos router has prefix="/api/videos" in definition
    app.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])

    # Health check endpoint with database validation
    @app.get("/health")
    async def health_check(response: Response):
        """Health check endpoint with database connectivity test.

        Returns:
            200: {"status": "healthy"} if database connection succeeds
            503: {"status": "unhealthy", "error": {...}} if database connection fails
        """
        try:
            async with app.state.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            logger.debug("health_check.success")
            return {"status": "healthy"}

        except Exception as e:
            logger.error(
                "health_check.failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {
                "status": "unhealthy",
                "error": {
                    "type": type(e).__name__,
                    "message": str(e),
                },
            }

    return app


# Create app instance for uvicorn
app = create_app()
