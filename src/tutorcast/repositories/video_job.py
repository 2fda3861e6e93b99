"""VideoJob repository for tutorcast backend.

Provides data access methods for VideoJob entities. All state-changing writes that can race
(webhook vs. poll, concurrent retries, duplicate relocations) are conditional UPDATEs whose
WHERE clause encodes the invariant, so no in-process locking is needed.
"""

from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tutorcast.core.timezone import utcnow
from tutorcast.models.video_job import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    VideoJob,
    VideoStatus,
)


class VideoJobRepository:
    """Repository for VideoJob entities.

    Methods:
    - add / get_by_id / get_by_provider_job_id: basic access
    - get_stale_for_sync: poll sweep selection
    - get_pending_relocation: completed jobs whose asset is not yet durable
    - apply_reconciliation: monotonic conditional status write
    - claim_retry / apply_retry_result: Retry Policy writes
    - mark_relocated / record_relocation_failure: Asset Relocator writes
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, job: VideoJob) -> VideoJob:
        """Persist new video job to database.

        Args:
            job: VideoJob entity to persist

        Returns:
            Persisted job
        """
        self.session.add(job)
        await self.session.flush()
        return job

    async def get_by_id(self, job_id: UUID) -> VideoJob | None:
        """Retrieve video job by internal UUID, always reloading column values.

        Args:
            job_id: Job's unique identifier

        Returns:
            VideoJob if found, None otherwise
        """
        result = await self.session.execute(
            select(VideoJob)
            .where(VideoJob.id == job_id)  # type: ignore[arg-type]
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_provider_job_id(self, provider_job_id: str) -> VideoJob | None:
        """Retrieve video job by the identifier the provider assigned.

        Args:
            provider_job_id: Provider video id (unique when present)

        Returns:
            VideoJob if found, None otherwise
        """
        result = await self.session.execute(
            select(VideoJob)
            .where(VideoJob.provider_job_id == provider_job_id)  # type: ignore[arg-type]
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_stale_for_sync(
        self, lookback: timedelta, limit: int = 50, now: datetime | None = None
    ) -> list[VideoJob]:
        """Retrieve non-terminal jobs that should be polled at the provider.

        Query explanation:
        - WHERE status IN (pending, waiting, processing): not yet terminal
        - AND provider_job_id IS NOT NULL: provider accepted the submission
        - AND created_at >= now - lookback: bounded window
        - ORDER BY updated_at ASC: least recently reconciled first
        - LIMIT: capped batch

        Args:
            lookback: How far back to look for jobs (e.g. 24 hours)
            limit: Maximum number of jobs to return (default: 50)
            now: Reference time (defaults to current UTC time)

        Returns:
            List of jobs to poll
        """
        cutoff = (now or utcnow()) - lookback
        result = await self.session.execute(
            select(VideoJob)
            .where(
                VideoJob.status.in_(ACTIVE_STATUSES),  # type: ignore[attr-defined]
                VideoJob.provider_job_id.is_not(None),  # type: ignore[union-attr]
                VideoJob.created_at >= cutoff,  # type: ignore[operator]
            )
            .order_by(VideoJob.updated_at.asc())  # type: ignore[attr-defined]
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_pending_relocation(self, max_attempts: int, limit: int = 50) -> list[VideoJob]:
        """Retrieve completed jobs whose asset has not been relocated yet.

        Jobs that already used up max_attempts are excluded; they stay flagged
        (is_downloaded = false) until relocated manually.

        Args:
            max_attempts: Relocation attempt cap for automatic retries
            limit: Maximum number of jobs to return (default: 50)

        Returns:
            List of jobs to relocate, oldest completion first
        """
        result = await self.session.execute(
            select(VideoJob)
            .where(
                VideoJob.status == VideoStatus.COMPLETED,  # type: ignore[arg-type]
                VideoJob.is_downloaded.is_(False),  # type: ignore[attr-defined]
                VideoJob.ephemeral_result_url.is_not(None),  # type: ignore[union-attr]
                VideoJob.relocation_attempts < max_attempts,  # type: ignore[operator]
            )
            .order_by(VideoJob.completed_at.asc())  # type: ignore[union-attr]
            .limit(limit)
        )
        return list(result.scalars().all())

    async def apply_reconciliation(
        self,
        job_id: UUID,
        provider_job_id: str,
        status: VideoStatus,
        values: dict[str, Any],
    ) -> bool:
        """Write a reconciliation result unless it would downgrade a terminal status.

        The row is updated only when:
        - provider_job_id still matches (a retry has not replaced the submission), AND
        - the stored status is non-terminal, OR the stored status equals the incoming
          status and the incoming status is terminal (refresh of the same outcome)

        Args:
            job_id: Job's unique identifier
            provider_job_id: Provider id the reconciliation result belongs to
            status: Incoming normalized status
            values: Additional column values to set

        Returns:
            True if the row was updated, False if the write was rejected
        """
        guard = VideoJob.status.in_(ACTIVE_STATUSES)  # type: ignore[attr-defined]
        if status in TERMINAL_STATUSES:
            guard = or_(guard, VideoJob.status == status)  # type: ignore[arg-type]

        stmt = (
            update(VideoJob)
            .where(
                and_(
                    VideoJob.id == job_id,  # type: ignore[arg-type]
                    VideoJob.provider_job_id == provider_job_id,  # type: ignore[arg-type]
                    guard,
                )
            )
            .values(status=status, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def claim_retry(self, job: VideoJob) -> bool:
        """Atomically consume one retry for a failed job.

        Increments retry_count only if the job is still failed, still under max_retries,
        and nobody else consumed a retry since the job was read (compare-and-set on
        retry_count). The increment is kept even if the resubmission later fails.

        Args:
            job: Job as read by the caller

        Returns:
            True if this caller owns the retry, False otherwise
        """
        stmt = (
            update(VideoJob)
            .where(
                VideoJob.id == job.id,  # type: ignore[arg-type]
                VideoJob.status == VideoStatus.FAILED,  # type: ignore[arg-type]
                VideoJob.retry_count == job.retry_count,  # type: ignore[arg-type]
                VideoJob.retry_count < VideoJob.max_retries,  # type: ignore[operator]
            )
            .values(retry_count=VideoJob.retry_count + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def apply_retry_result(self, job_id: UUID, values: dict[str, Any]) -> None:
        """Record the outcome of a claimed retry (new submission or new error).

        Args:
            job_id: Job's unique identifier
            values: Column values describing the resubmission outcome
        """
        stmt = (
            update(VideoJob)
            .where(VideoJob.id == job_id)  # type: ignore[arg-type]
            .values(updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def mark_relocated(self, job_id: UUID, durable_url: str) -> bool:
        """Record a successful relocation.

        Sets durable_result_url together with is_downloaded so the pair never diverges.
        Applied only while is_downloaded is false; a concurrent relocation that finished
        first keeps its URL.

        Args:
            job_id: Job's unique identifier
            durable_url: Public URL of the object in durable storage

        Returns:
            True if this call recorded the relocation

        Raises:
            ValueError: If durable_url is empty
        """
        if not durable_url:
            raise ValueError("durable_url cannot be empty")

        now = utcnow()
        stmt = (
            update(VideoJob)
            .where(
                VideoJob.id == job_id,  # type: ignore[arg-type]
                VideoJob.is_downloaded.is_(False),  # type: ignore[attr-defined]
            )
            .values(
                durable_result_url=durable_url,
                is_downloaded=True,
                downloaded_at=now,
                last_error=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def record_relocation_failure(self, job_id: UUID, error_message: str) -> None:
        """Record a failed relocation attempt without touching status or durable URL.

        Args:
            job_id: Job's unique identifier
            error_message: Error description (truncated to 1000 characters)
        """
        stmt = (
            update(VideoJob)
            .where(
                VideoJob.id == job_id,  # type: ignore[arg-type]
                VideoJob.is_downloaded.is_(False),  # type: ignore[attr-defined]
            )
            .values(
                last_error=error_message[:1000],
                relocation_attempts=VideoJob.relocation_attempts + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
