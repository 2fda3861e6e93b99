"""Relocate a stored video job and record the outcome.

Each call uses short-lived sessions around the network work: one to read the job, one to
record the result. The Relocator never holds a database connection while downloading.
"""

from typing import Callable
from uuid import UUID

import structlog

from tutorcast.models.video_job import VideoStatus
from tutorcast.repositories.video_job import VideoJobRepository
from tutorcast.services.exceptions import (
    RelocationError,
    RelocationValidationError,
    VideoJobNotFoundError,
)
from tutorcast.services.relocation.relocator import AssetRelocator

logger = structlog.get_logger(__name__)


async def relocate_video_job(
    job_id: UUID,
    session_factory: Callable,
    relocator: AssetRelocator,
    max_attempts: int | None = None,
) -> str | None:
    """Relocate one job's result video into durable storage.

    Args:
        job_id: Job to relocate
        session_factory: Factory function to create new database sessions
        relocator: Configured AssetRelocator
        max_attempts: Automatic attempt cap (None for manual relocation, which ignores it)

    Returns:
        Durable URL, or None when the attempt cap is reached

    Raises:
        VideoJobNotFoundError: Unknown job
        RelocationValidationError: Job is not completed
        RelocationError: Relocation failed (already recorded on the job)
    """
    async with session_factory() as session:
        job = await VideoJobRepository(session).get_by_id(job_id)

    if job is None:
        raise VideoJobNotFoundError(f"Video job {job_id} not found")
    if job.status != VideoStatus.COMPLETED:
        raise RelocationValidationError(f"Video job {job_id} is {job.status.value}, not completed")
    if job.is_downloaded and job.durable_result_url:
        return job.durable_result_url
    if max_attempts is not None and job.relocation_attempts >= max_attempts:
        logger.warning(
            "relocation.attempts_exhausted",
            job_id=str(job_id),
            relocation_attempts=job.relocation_attempts,
        )
        return None

    try:
        durable_url = await relocator.relocate(job)
    except RelocationError as e:
        async with session_factory() as session:
            await VideoJobRepository(session).record_relocation_failure(job_id, str(e))
            await session.commit()
        logger.error(
            "relocation.failed",
            job_id=str(job_id),
            error_type=type(e).__name__,
            error_message=str(e),
            attempt_number=job.relocation_attempts + 1,
        )
        raise

    async with session_factory() as session:
        repo = VideoJobRepository(session)
        applied = await repo.mark_relocated(job_id, durable_url)
        await session.commit()
        if not applied:
            # A concurrent relocation recorded first; keep its URL
            current = await repo.get_by_id(job_id)
            if current is not None and current.durable_result_url:
                durable_url = current.durable_result_url

    logger.info("relocation.recorded", job_id=str(job_id), durable_url=durable_url, applied=applied)
    return durable_url


async def relocate_after_completion(
    job_id: UUID,
    session_factory: Callable,
    relocator: AssetRelocator,
    max_attempts: int | None = None,
) -> None:
    """Background entry point: relocate and log, never raise.

    Failures are already recorded on the job (last_error, relocation_attempts); the next
    sweep picks the job up again.
    """
    try:
        await relocate_video_job(job_id, session_factory, relocator, max_attempts)
    except (RelocationError, VideoJobNotFoundError) as e:
        logger.warning(
            "relocation.deferred",
            job_id=str(job_id),
            error_type=type(e).__name__,
            error_message=str(e),
        )
