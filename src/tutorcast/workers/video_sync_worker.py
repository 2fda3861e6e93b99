"""Video sync worker: periodic reconciliation sweep for in-flight video jobs.

Webhooks are the fast path but are not guaranteed to arrive. Every SYNC_INTERVAL_SECONDS
(and once eagerly at startup) this worker polls the provider for non-terminal jobs, feeds
each report into the same reconcile() used by the webhook endpoint, then relocates
completed jobs whose asset is not durable yet.

## Session handling

Like the other batch workers, each job gets its own database session so one job's
failure never rolls back another job's update. Provider calls happen outside any session.
The batch query runs in a short-lived session and returns detached jobs.

## Overlap

VideoSyncSweeper owns an asyncio.Lock shared by the timer loop and manual triggers
(API "sweep now", CLI). A trigger that finds a sweep in progress is skipped.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

import structlog

from tutorcast.core.config import Settings
from tutorcast.core.timezone import utcnow
from tutorcast.models.video_job import VideoJob
from tutorcast.repositories.video_job import VideoJobRepository
from tutorcast.services.heygen.client import HeyGenClient
from tutorcast.services.relocation.relocator import AssetRelocator
from tutorcast.services.relocation.service import relocate_video_job
from tutorcast.services.video_generation.reconciliation import (
    VideoJobUpdate,
    apply_update,
    reconcile,
)

logger = structlog.get_logger(__name__)


@dataclass
class SweepResult:
    """Per-sweep counters (for logs, API and CLI output)."""

    checked: int = 0
    updated: int = 0
    errors: int = 0
    relocated: int = 0
    relocation_errors: int = 0
    duration_seconds: float = 0.0


async def sync_single_job(
    job: VideoJob,
    session_factory: Callable,
    client: HeyGenClient,
    source: str = "poll",
) -> VideoJobUpdate | None:
    """Poll the provider for one job and reconcile the result.

    Args:
        job: Job to sync (may be detached from any session)
        session_factory: Factory function to create new database sessions
        client: Provider gateway
        source: Log label for the reconciliation channel

    Returns:
        The applied update, or None if nothing was written

    Raises:
        ProviderError: Status query failed (job left unchanged)
    """
    if job.provider_job_id is None:
        return None

    report = await client.get_video_status(job.provider_job_id)

    async with session_factory() as session:
        repo = VideoJobRepository(session)
        current = await repo.get_by_id(job.id)
        if current is None or current.provider_job_id != job.provider_job_id:
            # Retried in the meantime; the report belongs to an old submission
            return None

        update = reconcile(current, report, utcnow())
        if update is None:
            logger.debug(
                "video.sync.ignored",
                job_id=str(job.id),
                status=current.status.value,
                provider_status=report.status,
            )
            return None

        applied = await apply_update(repo, current, update, source)
        await session.commit()

    return update if applied else None


class VideoSyncSweeper:
    """Runs reconciliation sweeps; at most one at a time per process."""

    def __init__(
        self,
        session_factory: Callable,
        client: HeyGenClient,
        relocator: AssetRelocator,
        settings: Settings,
    ):
        self.session_factory = session_factory
        self.client = client
        self.relocator = relocator
        self.settings = settings
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def run_once(self) -> SweepResult | None:
        """Run one sweep unless another is in progress.

        Returns:
            SweepResult, or None if the sweep was skipped
        """
        if self._lock.locked():
            logger.info("video.sweep.skipped", reason="sweep_in_progress")
            return None

        async with self._lock:
            return await self._sweep()

    async def _sweep(self) -> SweepResult:
        start_time = time.time()
        result = SweepResult()
        semaphore = asyncio.Semaphore(self.settings.sync_concurrency)

        async with self.session_factory() as session:
            jobs = await VideoJobRepository(session).get_stale_for_sync(
                lookback=timedelta(hours=self.settings.sync_lookback_hours),
                limit=self.settings.sync_batch_size,
            )

        async def sync_guarded(job: VideoJob):
            async with semaphore:
                return await sync_single_job(job, self.session_factory, self.client)

        outcomes = await asyncio.gather(*(sync_guarded(job) for job in jobs), return_exceptions=True)

        result.checked = len(jobs)
        for job, outcome in zip(jobs, outcomes):
            if isinstance(outcome, Exception):
                result.errors += 1
                logger.error(
                    "video.sync.failed",
                    job_id=str(job.id),
                    provider_job_id=job.provider_job_id,
                    error_type=type(outcome).__name__,
                    error_message=str(outcome),
                )
            elif outcome is not None:
                result.updated += 1

        await self._relocation_pass(result, semaphore)

        result.duration_seconds = round(time.time() - start_time, 3)
        logger.info(
            "video.sweep.completed",
            checked=result.checked,
            updated=result.updated,
            errors=result.errors,
            relocated=result.relocated,
            relocation_errors=result.relocation_errors,
            duration_seconds=result.duration_seconds,
        )
        return result

    async def _relocation_pass(self, result: SweepResult, semaphore: asyncio.Semaphore) -> None:
        """Relocate completed jobs that are not durable yet (under the attempt cap)."""
        max_attempts = self.settings.relocation_max_attempts

        async with self.session_factory() as session:
            jobs = await VideoJobRepository(session).get_pending_relocation(
                max_attempts=max_attempts, limit=self.settings.sync_batch_size
            )

        async def relocate_guarded(job: VideoJob):
            async with semaphore:
                return await relocate_video_job(
                    job.id, self.session_factory, self.relocator, max_attempts
                )

        outcomes = await asyncio.gather(
            *(relocate_guarded(job) for job in jobs), return_exceptions=True
        )

        for job, outcome in zip(jobs, outcomes):
            if isinstance(outcome, Exception):
                # Failure already recorded on the job by relocate_video_job
                result.relocation_errors += 1
                logger.warning(
                    "video.relocation.pending",
                    job_id=str(job.id),
                    error_type=type(outcome).__name__,
                    error_message=str(outcome),
                )
            elif outcome is not None:
                result.relocated += 1


async def run_video_sync_worker(sweeper: VideoSyncSweeper, interval_seconds: float) -> None:
    """Main worker loop for video reconciliation.

    Sweeps once immediately, then every interval_seconds. Handles graceful shutdown.

    Args:
        sweeper: Shared sweeper (its lock is also used by manual triggers)
        interval_seconds: Delay between sweeps
    """
    logger.info("worker.started", worker="video_sync", interval_seconds=interval_seconds)

    try:
        while True:
            try:
                await sweeper.run_once()

                await asyncio.sleep(interval_seconds)

            except asyncio.CancelledError:
                raise

            except Exception as e:
                # Unexpected error in sweep loop - log and continue with backoff
                logger.error(
                    "worker.error",
                    worker="video_sync",
                    error_type=type(e).__name__,
                    error_message=str(e),
                    exc_info=True,
                )
                await asyncio.sleep(5)

    except asyncio.CancelledError:
        logger.info("worker.stopped", worker="video_sync")
        raise
