"""Video job submission.

submit() validates the input spec, resolves catalog references, calls the provider exactly
once and writes exactly one job row, whatever the provider answers. Submission never waits
for the video itself; completion arrives later through reconciliation.
"""

from typing import Any
from uuid import uuid4

import structlog
from pydantic import ValidationError

from tutorcast.models.catalog import Avatar, Voice
from tutorcast.models.video_job import VideoJob, VideoStatus
from tutorcast.services.exceptions import (
    ProviderError,
    ProviderResponseError,
    VideoValidationError,
)
from tutorcast.services.heygen.client import HeyGenClient, VideoRequest, build_video_payload
from tutorcast.services.video_generation.schemas import VideoInputSpec
from tutorcast.services.webhook_signature import generate_webhook_secret
from tutorcast.uow import UnitOfWork

logger = structlog.get_logger(__name__)

MAX_ERROR_LENGTH = 1000


def build_video_request(job: VideoJob, avatar: Avatar, voice: Voice) -> VideoRequest:
    """Translate a stored job plus resolved catalog entries into a provider request."""
    return VideoRequest(
        provider_avatar_id=avatar.provider_avatar_id,
        avatar_style=avatar.avatar_style,
        provider_voice_id=voice.provider_voice_id,
        input_text=job.input_text,
        width=job.dimension_width,
        height=job.dimension_height,
        title=job.title,
        background_type=job.background_type,
        background_value=job.background_value,
        background_play_style=job.background_play_style,
        callback_id=str(job.id),
    )


async def resolve_catalog(uow: UnitOfWork, avatar_id, voice_id) -> tuple[Avatar, Voice]:
    """Load avatar and voice catalog entries.

    Raises:
        VideoValidationError: If either reference is unknown
    """
    avatar = await uow.avatars.get_by_id(avatar_id)
    if avatar is None:
        raise VideoValidationError(f"Unknown avatar: {avatar_id}")

    voice = await uow.voices.get_by_id(voice_id)
    if voice is None:
        raise VideoValidationError(f"Unknown voice: {voice_id}")

    return avatar, voice


class VideoJobOrchestrator:
    """Creates video jobs and submits them to the provider."""

    def __init__(self, client: HeyGenClient, max_retries: int = 3):
        self.client = client
        self.max_retries = max_retries

    async def submit(self, uow: UnitOfWork, spec: VideoInputSpec | dict[str, Any]) -> VideoJob:
        """Submit a new video generation request.

        Outcomes (one row written in every case):
        - Provider accepted: status=pending, provider_job_id set
        - Provider answered without a video id: status=failed, descriptive error_message
        - Provider or transport error: status=failed, retry_count=0, error_message with
          HTTP status and body

        Args:
            uow: Unit of Work (caller commits on exit)
            spec: Validated input spec, or raw mapping to validate

        Returns:
            Persisted VideoJob

        Raises:
            VideoValidationError: Invalid spec or unknown avatar/voice (nothing written,
                no provider call)
        """
        if not isinstance(spec, VideoInputSpec):
            try:
                spec = VideoInputSpec.model_validate(spec)
            except ValidationError as e:
                raise VideoValidationError(str(e)) from e

        avatar, voice = await resolve_catalog(uow, spec.avatar_id, spec.voice_id)

        job = VideoJob(
            id=uuid4(),
            status=VideoStatus.PENDING,
            webhook_secret=generate_webhook_secret(),
            max_retries=self.max_retries,
            **spec.model_dump(),
        )

        payload = build_video_payload(build_video_request(job, avatar, voice))

        try:
            job.provider_job_id = await self.client.generate_video(payload)
        except ProviderResponseError as e:
            job.status = VideoStatus.FAILED
            job.error_message = str(e)[:MAX_ERROR_LENGTH]
            job.last_error = job.error_message
            logger.error(
                "video.submit.no_identifier",
                job_id=str(job.id),
                error_message=str(e),
            )
        except ProviderError as e:
            job.status = VideoStatus.FAILED
            job.error_message = str(e)[:MAX_ERROR_LENGTH]
            job.last_error = job.error_message
            logger.error(
                "video.submit.failed",
                job_id=str(job.id),
                error_type=type(e).__name__,
                status_code=e.status_code,
                error_message=str(e),
            )
        else:
            logger.info(
                "video.submit.accepted",
                job_id=str(job.id),
                provider_job_id=job.provider_job_id,
                lesson_id=job.lesson_id,
            )

        await uow.video_jobs.add(job)
        return job
