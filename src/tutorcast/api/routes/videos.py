"""Video generation API endpoints.

This module implements REST endpoints for the video job lifecycle:
- POST /api/videos - Submit a generation request (returns immediately)
- GET /api/videos/{job_id} - Job detail
- GET /api/videos/{job_id}/status - Status summary
- POST /api/videos/{job_id}/retry - Resubmit a failed job (bounded by max_retries)
- POST /api/videos/{job_id}/sync - Reconcile one job from the provider now
- POST /api/videos/{job_id}/relocate - Manual relocation (ignores the automatic attempt cap)
- POST /api/videos/sync - Run a reconciliation sweep now
- POST /api/videos/assets/images - Upload an image asset to the provider
"""

from datetime import datetime
from typing import Annotated, Optional
from uuid import UUID

import structlog
from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    Header,
    HTTPException,
    Request,
    status,
)
from pydantic import BaseModel, ConfigDict, Field

from tutorcast.api.dependencies import (
    get_relocator,
    get_session_factory,
    get_settings,
    get_sweeper,
    get_uow_factory,
    get_video_client,
)
from tutorcast.core.config import Settings
from tutorcast.models.video_job import VideoJob, VideoStatus
from tutorcast.services.exceptions import (
    ProviderError,
    RelocationError,
    RetryPolicyError,
    VideoJobNotFoundError,
    VideoValidationError,
)
from tutorcast.services.heygen.client import HeyGenClient
from tutorcast.services.relocation.relocator import AssetRelocator
from tutorcast.services.relocation.service import relocate_after_completion, relocate_video_job
from tutorcast.services.video_generation.orchestrator import VideoJobOrchestrator
from tutorcast.services.video_generation.retry_policy import RetryPolicy
from tutorcast.services.video_generation.schemas import VideoInputSpec
from tutorcast.workers.video_sync_worker import VideoSyncSweeper, sync_single_job

logger = structlog.get_logger()
router = APIRouter(prefix="/api/videos", tags=["videos"])


# Response Models


class VideoJobResponse(BaseModel):
    """Video job detail. The webhook secret is never exposed."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    provider_job_id: Optional[str]
    avatar_id: UUID
    voice_id: UUID
    title: Optional[str]
    input_text: str
    background_type: Optional[str]
    background_value: Optional[str]
    background_play_style: Optional[str]
    dimension_width: int
    dimension_height: int
    lesson_id: Optional[int]
    status: VideoStatus
    ephemeral_result_url: Optional[str]
    durable_result_url: Optional[str]
    thumbnail_url: Optional[str]
    duration_seconds: Optional[float]
    error_message: Optional[str]
    last_error: Optional[str]
    retry_count: int
    max_retries: int
    is_downloaded: bool
    downloaded_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime]


class VideoStatusResponse(BaseModel):
    """Compact status summary for polling clients."""

    id: UUID
    status: VideoStatus
    video_url: Optional[str] = Field(
        None, description="Durable URL when relocated, otherwise the provider URL"
    )
    is_downloaded: bool
    error_message: Optional[str]
    retry_count: int
    max_retries: int
    can_retry: bool

    @classmethod
    def from_job(cls, job: VideoJob) -> "VideoStatusResponse":
        return cls(
            id=job.id,
            status=job.status,
            video_url=job.durable_result_url or job.ephemeral_result_url,
            is_downloaded=job.is_downloaded,
            error_message=job.error_message,
            retry_count=job.retry_count,
            max_retries=job.max_retries,
            can_retry=job.can_retry,
        )


class RelocationResponse(BaseModel):
    id: UUID
    durable_result_url: str


class SweepResponse(BaseModel):
    status: str
    checked: int = 0
    updated: int = 0
    errors: int = 0
    relocated: int = 0
    relocation_errors: int = 0


class ImageAssetResponse(BaseModel):
    image_key: str


async def _get_job_or_404(uow, job_id: UUID) -> VideoJob:
    job = await uow.video_jobs.get_by_id(job_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"Video job {job_id} not found"
        )
    return job


# API Endpoints


@router.post("", response_model=VideoJobResponse, status_code=status.HTTP_201_CREATED)
async def submit_video(
    spec: VideoInputSpec,
    uow_factory=Depends(get_uow_factory),
    client: HeyGenClient = Depends(get_video_client),
    settings: Settings = Depends(get_settings),
) -> VideoJobResponse:
    """Submit a video generation request.

    The job is created whether or not the provider accepts it: a rejected submission is
    stored with status=failed and can be retried.

    HTTP Status Codes:
        201: Job created (pending or failed)
        400: Unknown avatar or voice
        422: Invalid request body
    """
    orchestrator = VideoJobOrchestrator(client, max_retries=settings.video_max_retries)
    try:
        async with await uow_factory() as uow:
            job = await orchestrator.submit(uow, spec)
    except VideoValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return VideoJobResponse.model_validate(job)


@router.post("/sync", response_model=SweepResponse)
async def sweep_now(sweeper: VideoSyncSweeper = Depends(get_sweeper)) -> SweepResponse:
    """Run one reconciliation sweep now (skipped if one is already running)."""
    result = await sweeper.run_once()
    if result is None:
        return SweepResponse(status="skipped")

    return SweepResponse(
        status="completed",
        checked=result.checked,
        updated=result.updated,
        errors=result.errors,
        relocated=result.relocated,
        relocation_errors=result.relocation_errors,
    )


@router.post("/assets/images", response_model=ImageAssetResponse)
async def upload_image_asset(
    request: Request,
    content_type: Annotated[str | None, Header()] = None,
    client: HeyGenClient = Depends(get_video_client),
) -> ImageAssetResponse:
    """Forward a raw image body to the provider's asset upload.

    HTTP Status Codes:
        200: Uploaded, returns the provider image_key
        400: Empty body
        415: Body is not an image
        502: Provider rejected the upload or is unavailable
    """
    media_type = (content_type or "").split(";")[0].strip().lower()
    if not media_type.startswith("image/"):
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail="Content-Type must be an image type",
        )

    content = await request.body()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty image body")

    try:
        image_key = await client.upload_image_asset(content, media_type)
    except ProviderError as e:
        logger.error("video.asset_upload.failed", error_message=str(e), status_code=e.status_code)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    logger.info("video.asset_upload.succeeded", image_key=image_key, size_bytes=len(content))
    return ImageAssetResponse(image_key=image_key)


@router.get("/{job_id}", response_model=VideoJobResponse)
async def get_video(job_id: UUID, uow_factory=Depends(get_uow_factory)) -> VideoJobResponse:
    """Get full video job detail."""
    async with await uow_factory() as uow:
        job = await _get_job_or_404(uow, job_id)
    return VideoJobResponse.model_validate(job)


@router.get("/{job_id}/status", response_model=VideoStatusResponse)
async def get_video_status(
    job_id: UUID, uow_factory=Depends(get_uow_factory)
) -> VideoStatusResponse:
    """Get a compact status summary."""
    async with await uow_factory() as uow:
        job = await _get_job_or_404(uow, job_id)
    return VideoStatusResponse.from_job(job)


@router.post("/{job_id}/retry", response_model=VideoJobResponse)
async def retry_video(
    job_id: UUID,
    uow_factory=Depends(get_uow_factory),
    client: HeyGenClient = Depends(get_video_client),
) -> VideoJobResponse:
    """Resubmit a failed job.

    HTTP Status Codes:
        200: Retry consumed (job pending, or still failed with the new error)
        400: Catalog entries referenced by the job no longer exist
        404: Job not found
        409: Job is not failed or its retries are exhausted
    """
    policy = RetryPolicy(client)
    try:
        async with await uow_factory() as uow:
            job = await policy.retry(uow, job_id)
    except VideoJobNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except RetryPolicyError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except VideoValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return VideoJobResponse.model_validate(job)


@router.post("/{job_id}/sync", response_model=VideoStatusResponse)
async def sync_video(
    job_id: UUID,
    background_tasks: BackgroundTasks,
    uow_factory=Depends(get_uow_factory),
    session_factory=Depends(get_session_factory),
    client: HeyGenClient = Depends(get_video_client),
    relocator: AssetRelocator = Depends(get_relocator),
    settings: Settings = Depends(get_settings),
) -> VideoStatusResponse:
    """Query the provider for one job now and reconcile the answer.

    HTTP Status Codes:
        200: Current status (updated or unchanged)
        404: Job not found
        409: Job was never accepted by the provider
        502: Provider status query failed
    """
    async with await uow_factory() as uow:
        job = await _get_job_or_404(uow, job_id)

    if job.provider_job_id is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Job has no provider video id; retry it instead",
        )

    try:
        update = await sync_single_job(job, session_factory, client, source="manual")
    except ProviderError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    if update is not None and update.relocate:
        background_tasks.add_task(
            relocate_after_completion,
            job.id,
            session_factory,
            relocator,
            settings.relocation_max_attempts,
        )

    async with await uow_factory() as uow:
        job = await _get_job_or_404(uow, job_id)
    return VideoStatusResponse.from_job(job)


@router.post("/{job_id}/relocate", response_model=RelocationResponse)
async def relocate_video(
    job_id: UUID,
    uow_factory=Depends(get_uow_factory),
    session_factory=Depends(get_session_factory),
    relocator: AssetRelocator = Depends(get_relocator),
) -> RelocationResponse:
    """Relocate a completed job's video into durable storage now.

    Manual relocation ignores the automatic attempt cap.

    HTTP Status Codes:
        200: Relocated (or already relocated)
        404: Job not found
        409: Job is not completed
        502: Relocation failed (recorded in last_error)
    """
    async with await uow_factory() as uow:
        job = await _get_job_or_404(uow, job_id)

    if job.status != VideoStatus.COMPLETED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Only completed jobs can be relocated (status: {job.status.value})",
        )

    try:
        durable_url = await relocate_video_job(job_id, session_factory, relocator)
    except VideoJobNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except RelocationError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return RelocationResponse(id=job_id, durable_result_url=durable_url)  # type: ignore[arg-type]
