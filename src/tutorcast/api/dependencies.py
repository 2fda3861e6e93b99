"""FastAPI dependencies for shared application services.

Services are created once in the application lifespan and stored on app.state; these
dependencies hand them to route handlers (and let tests override them).
"""

from typing import Callable

from fastapi import Request

from tutorcast.core.config import Settings
from tutorcast.services.heygen.client import HeyGenClient
from tutorcast.services.relocation.relocator import AssetRelocator
from tutorcast.uow import UnitOfWork
from tutorcast.workers.video_sync_worker import VideoSyncSweeper


def get_settings(request: Request) -> Settings:
    """Get application settings loaded at startup."""
    return request.app.state.settings


def get_uow_factory(request: Request) -> Callable[[], UnitOfWork]:
    """Get UnitOfWork factory from app state.

    Example:
        >>> @router.get("/endpoint")
        >>> async def endpoint(uow_factory=Depends(get_uow_factory)):
        ...     async with await uow_factory() as uow:
        ...         await uow.video_jobs.get_by_id(job_id)
    """
    return request.app.state.uow_factory


def get_session_factory(request: Request) -> Callable:
    """Get the raw session factory (for per-job sessions in background tasks)."""
    return request.app.state.session_factory


def get_video_client(request: Request) -> HeyGenClient:
    """Get the provider gateway client."""
    return request.app.state.video_client


def get_relocator(request: Request) -> AssetRelocator:
    """Get the asset relocator."""
    return request.app.state.relocator


def get_sweeper(request: Request) -> VideoSyncSweeper:
    """Get the sweeper shared with the background sync worker."""
    return request.app.state.sweeper
