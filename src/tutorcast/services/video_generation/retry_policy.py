"""Bounded retry of failed video jobs.

A retry first claims one unit of the job's retry budget with a compare-and-set UPDATE and
commits it, then resubmits the stored input spec. The consumed retry is never given back,
so a resubmission that fails again still counts.
"""

from uuid import UUID

import structlog

from tutorcast.models.video_job import VideoJob, VideoStatus
from tutorcast.services.exceptions import ProviderError, RetryPolicyError, VideoJobNotFoundError
from tutorcast.services.heygen.client import HeyGenClient, build_video_payload
from tutorcast.services.video_generation.orchestrator import (
    MAX_ERROR_LENGTH,
    build_video_request,
    resolve_catalog,
)
from tutorcast.services.webhook_signature import generate_webhook_secret
from tutorcast.uow import UnitOfWork

logger = structlog.get_logger(__name__)


class RetryPolicy:
    """Resubmits failed jobs within their max_retries budget."""

    def __init__(self, client: HeyGenClient):
        self.client = client

    async def retry(self, uow: UnitOfWork, job_id: UUID) -> VideoJob:
        """Resubmit a failed job.

        Args:
            uow: Unit of Work (the retry claim is committed early; caller commits the rest)
            job_id: Job to retry

        Returns:
            Job after the attempt: pending with a new provider_job_id, or still failed with
            the new error recorded

        Raises:
            VideoJobNotFoundError: Unknown job
            RetryPolicyError: Job is not failed, retries are exhausted, or a concurrent
                retry claimed the attempt first (retry_count unchanged)
            VideoValidationError: Catalog entries referenced by the job were removed
        """
        job = await uow.video_jobs.get_by_id(job_id)
        if job is None:
            raise VideoJobNotFoundError(f"Video job {job_id} not found")

        if job.status != VideoStatus.FAILED:
            raise RetryPolicyError(f"Only failed jobs can be retried (status: {job.status.value})")
        if job.retry_count >= job.max_retries:
            raise RetryPolicyError(
                f"Retry limit reached ({job.retry_count}/{job.max_retries})"
            )

        avatar, voice = await resolve_catalog(uow, job.avatar_id, job.voice_id)
        payload = build_video_payload(build_video_request(job, avatar, voice))

        if not await uow.video_jobs.claim_retry(job):
            raise RetryPolicyError("Retry was claimed concurrently or is no longer allowed")
        await uow.commit()

        attempt_number = job.retry_count + 1
        secret = generate_webhook_secret()

        try:
            provider_job_id = await self.client.generate_video(payload)
        except ProviderError as e:
            message = str(e)[:MAX_ERROR_LENGTH]
            await uow.video_jobs.apply_retry_result(
                job.id, {"error_message": message, "last_error": message}
            )
            logger.error(
                "video.retry.failed",
                job_id=str(job.id),
                error_type=type(e).__name__,
                status_code=e.status_code,
                error_message=str(e),
                attempt_number=attempt_number,
            )
        else:
            await uow.video_jobs.apply_retry_result(
                job.id,
                {
                    "provider_job_id": provider_job_id,
                    "status": VideoStatus.PENDING,
                    "webhook_secret": secret,
                    "error_message": None,
                    "last_error": None,
                    "ephemeral_result_url": None,
                    "thumbnail_url": None,
                    "duration_seconds": None,
                    "completed_at": None,
                    "provider_metadata": None,
                    "relocation_attempts": 0,
                },
            )
            logger.info(
                "video.retry.resubmitted",
                job_id=str(job.id),
                previous_provider_job_id=job.provider_job_id,
                provider_job_id=provider_job_id,
                attempt_number=attempt_number,
            )

        refreshed = await uow.video_jobs.get_by_id(job.id)
        if refreshed is None:
            raise VideoJobNotFoundError(f"Video job {job.id} not found")
        return refreshed
