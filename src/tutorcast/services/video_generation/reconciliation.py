"""Reconciliation of provider-reported video state into stored jobs.

Webhooks and the poll sweep both produce a ProviderVideoStatus report and feed it to
reconcile(), a pure function that decides the update. apply_update() writes it through the
repository's conditional UPDATE, so a stale report can never downgrade a terminal status
even when the two channels race.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from tutorcast.models.video_job import VideoJob, VideoStatus
from tutorcast.repositories.video_job import VideoJobRepository
from tutorcast.services.heygen.client import ProviderVideoStatus

logger = structlog.get_logger(__name__)

MAX_ERROR_LENGTH = 1000

_STATUS_MAP = {status.value: status for status in VideoStatus}


@dataclass(frozen=True)
class VideoJobUpdate:
    """Decided change for one job.

    Attributes:
        status: New (normalized) status
        values: Additional column values
        relocate: True when the asset should be relocated after the write
    """

    status: VideoStatus
    values: dict[str, Any] = field(default_factory=dict)
    relocate: bool = False


def normalize_status(raw: str | None) -> VideoStatus | None:
    """Map a provider status string to VideoStatus (case-insensitive).

    Returns:
        VideoStatus, or None if the value is not recognized
    """
    if not raw:
        return None
    return _STATUS_MAP.get(raw.strip().lower())


def _truncate(message: str) -> str:
    return message[:MAX_ERROR_LENGTH]


def reconcile(
    job: VideoJob, report: ProviderVideoStatus, now: datetime
) -> VideoJobUpdate | None:
    """Decide how a provider report changes a job.

    Rules:
    - Unrecognized status: failed, raw value kept in error_message
    - completed without a result URL: failed (provider error)
    - Terminal job + different incoming status: ignored (monotonicity)
    - completed: result fields set, errors cleared, relocation requested
    - failed: error_message and last_error set
    - pending / waiting / processing: status only

    Args:
        job: Current job state
        report: Provider-reported state
        now: Reconciliation time (naive UTC)

    Returns:
        VideoJobUpdate, or None if the report must not change the job
    """
    if job.provider_job_id is None:
        return None

    status = normalize_status(report.status)
    error_message = report.error_message

    if status is None:
        status = VideoStatus.FAILED
        error_message = f"Unrecognized provider status: {report.status}"
    elif status == VideoStatus.COMPLETED and not report.video_url:
        status = VideoStatus.FAILED
        error_message = "Provider reported completion without a result URL"

    if job.status.is_terminal and status != job.status:
        return None

    values: dict[str, Any] = {}
    if report.metadata:
        values["provider_metadata"] = report.metadata

    if status == VideoStatus.COMPLETED:
        values.update(
            ephemeral_result_url=report.video_url,
            thumbnail_url=report.thumbnail_url or job.thumbnail_url,
            duration_seconds=(
                report.duration if report.duration is not None else job.duration_seconds
            ),
            completed_at=job.completed_at or now,
            error_message=None,
        )
        if not job.is_downloaded:
            # Relocation errors live in last_error until the asset is durable
            values["last_error"] = None
        return VideoJobUpdate(status=status, values=values, relocate=not job.is_downloaded)

    if status == VideoStatus.FAILED:
        message = _truncate(error_message or "Video generation failed at provider")
        values.update(error_message=message, last_error=message)
        return VideoJobUpdate(status=status, values=values)

    return VideoJobUpdate(status=status, values=values)


async def apply_update(
    repo: VideoJobRepository, job: VideoJob, update: VideoJobUpdate, source: str
) -> bool:
    """Write a reconciliation update with the monotonic guard.

    Args:
        repo: Repository bound to the caller's session (caller commits)
        job: Job the update was computed for
        update: Decided update
        source: "webhook", "poll" or "manual" (logging only)

    Returns:
        True if the row was updated
    """
    applied = await repo.apply_reconciliation(
        job.id, job.provider_job_id, update.status, update.values  # type: ignore[arg-type]
    )

    if applied:
        logger.info(
            "video.reconciled",
            job_id=str(job.id),
            provider_job_id=job.provider_job_id,
            previous_status=job.status.value,
            status=update.status.value,
            source=source,
        )
    else:
        logger.info(
            "video.reconcile_rejected",
            job_id=str(job.id),
            provider_job_id=job.provider_job_id,
            incoming_status=update.status.value,
            source=source,
        )
    return applied
