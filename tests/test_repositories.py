"""Repository layer tests for tutorcast backend.

Tests focus on the conditional writes that keep racing channels safe:
- Reconciliation never downgrades a terminal status
- Reconciliation results for a replaced submission are rejected
- Retry claims are compare-and-set on retry_count and bounded by max_retries
- Relocation success is recorded once; failures never touch status or durable URL
- Poll and relocation selection queries

Simple CRUD operations are not tested (trust SQLAlchemy).
"""

from datetime import timedelta

import pytest

from tutorcast.core.timezone import utcnow
from tutorcast.models.video_job import VideoStatus
from tutorcast.repositories.video_job import VideoJobRepository


@pytest.mark.asyncio
async def test_reconciliation_applies_to_non_terminal_job(session, make_video_job):
    job = await make_video_job(status=VideoStatus.PROCESSING, provider_job_id="vid_a")
    repo = VideoJobRepository(session)

    applied = await repo.apply_reconciliation(
        job.id, "vid_a", VideoStatus.COMPLETED, {"ephemeral_result_url": "https://x"}
    )
    await session.commit()

    assert applied is True
    stored = await repo.get_by_id(job.id)
    assert stored.status == VideoStatus.COMPLETED
    assert stored.ephemeral_result_url == "https://x"


@pytest.mark.asyncio
@pytest.mark.parametrize("incoming", [VideoStatus.PROCESSING, VideoStatus.PENDING, VideoStatus.FAILED])
async def test_completed_job_is_not_downgraded(session, make_video_job, incoming):
    """Test monotonicity: a stale report after completion is rejected by the WHERE clause."""
    job = await make_video_job(
        status=VideoStatus.COMPLETED, provider_job_id="vid_b", ephemeral_result_url="https://x"
    )
    repo = VideoJobRepository(session)

    applied = await repo.apply_reconciliation(job.id, "vid_b", incoming, {})
    await session.commit()

    assert applied is False
    stored = await repo.get_by_id(job.id)
    assert stored.status == VideoStatus.COMPLETED


@pytest.mark.asyncio
async def test_same_terminal_status_can_be_refreshed(session, make_video_job):
    job = await make_video_job(
        status=VideoStatus.COMPLETED, provider_job_id="vid_c", ephemeral_result_url="https://old"
    )
    repo = VideoJobRepository(session)

    applied = await repo.apply_reconciliation(
        job.id, "vid_c", VideoStatus.COMPLETED, {"ephemeral_result_url": "https://new"}
    )
    await session.commit()

    assert applied is True
    assert (await repo.get_by_id(job.id)).ephemeral_result_url == "https://new"


@pytest.mark.asyncio
async def test_reconciliation_for_replaced_submission_is_rejected(session, make_video_job):
    """Test that a report for an old provider id cannot touch a retried job."""
    job = await make_video_job(status=VideoStatus.PENDING, provider_job_id="vid_new")
    repo = VideoJobRepository(session)

    applied = await repo.apply_reconciliation(job.id, "vid_old", VideoStatus.FAILED, {})

    assert applied is False


@pytest.mark.asyncio
async def test_claim_retry_is_compare_and_set(session, make_video_job):
    job = await make_video_job(status=VideoStatus.FAILED, retry_count=1, max_retries=3)
    repo = VideoJobRepository(session)

    first = await repo.claim_retry(job)
    # Same observed retry_count: a concurrent caller loses
    second = await repo.claim_retry(job)
    await session.commit()

    assert first is True
    assert second is False
    assert (await repo.get_by_id(job.id)).retry_count == 2


@pytest.mark.asyncio
async def test_claim_retry_respects_max_retries(session, make_video_job):
    job = await make_video_job(status=VideoStatus.FAILED, retry_count=3, max_retries=3)
    repo = VideoJobRepository(session)

    assert await repo.claim_retry(job) is False
    await session.commit()
    assert (await repo.get_by_id(job.id)).retry_count == 3


@pytest.mark.asyncio
async def test_claim_retry_requires_failed_status(session, make_video_job):
    job = await make_video_job(status=VideoStatus.PROCESSING)

    assert await VideoJobRepository(session).claim_retry(job) is False


@pytest.mark.asyncio
async def test_mark_relocated_applies_once(session, make_video_job):
    job = await make_video_job(status=VideoStatus.COMPLETED, ephemeral_result_url="https://x")
    repo = VideoJobRepository(session)

    first = await repo.mark_relocated(job.id, "https://storage/first.mp4")
    second = await repo.mark_relocated(job.id, "https://storage/second.mp4")
    await session.commit()

    assert (first, second) == (True, False)
    stored = await repo.get_by_id(job.id)
    assert stored.is_downloaded is True
    assert stored.durable_result_url == "https://storage/first.mp4"
    assert stored.downloaded_at is not None


@pytest.mark.asyncio
async def test_mark_relocated_rejects_empty_url(session, make_video_job):
    job = await make_video_job(status=VideoStatus.COMPLETED)

    with pytest.raises(ValueError):
        await VideoJobRepository(session).mark_relocated(job.id, "")


@pytest.mark.asyncio
async def test_relocation_failure_keeps_status_and_counts_attempts(session, make_video_job):
    job = await make_video_job(status=VideoStatus.COMPLETED, ephemeral_result_url="https://x")
    repo = VideoJobRepository(session)

    await repo.record_relocation_failure(job.id, "download timed out")
    await repo.record_relocation_failure(job.id, "download timed out again")
    await session.commit()

    stored = await repo.get_by_id(job.id)
    assert stored.status == VideoStatus.COMPLETED
    assert stored.relocation_attempts == 2
    assert stored.last_error == "download timed out again"
    assert stored.is_downloaded is False
    assert stored.durable_result_url is None


@pytest.mark.asyncio
async def test_relocation_failure_never_touches_relocated_job(session, make_video_job):
    job = await make_video_job(
        status=VideoStatus.COMPLETED,
        ephemeral_result_url="https://x",
        is_downloaded=True,
        durable_result_url="https://storage/ok.mp4",
    )
    repo = VideoJobRepository(session)

    await repo.record_relocation_failure(job.id, "late failure")
    await session.commit()

    stored = await repo.get_by_id(job.id)
    assert stored.durable_result_url == "https://storage/ok.mp4"
    assert stored.last_error is None


@pytest.mark.asyncio
async def test_get_stale_for_sync_selection(session, make_video_job):
    """Test poll selection: non-terminal, has provider id, inside lookback window."""
    now = utcnow()
    pending = await make_video_job(status=VideoStatus.PENDING)
    waiting = await make_video_job(status=VideoStatus.WAITING)
    processing = await make_video_job(status=VideoStatus.PROCESSING)
    await make_video_job(status=VideoStatus.COMPLETED, ephemeral_result_url="https://x")
    await make_video_job(status=VideoStatus.FAILED)
    await make_video_job(status=VideoStatus.PENDING, provider_job_id=None)
    await make_video_job(status=VideoStatus.PENDING, created_at=now - timedelta(hours=30))

    jobs = await VideoJobRepository(session).get_stale_for_sync(lookback=timedelta(hours=24))

    assert {job.id for job in jobs} == {pending.id, waiting.id, processing.id}


@pytest.mark.asyncio
async def test_get_stale_for_sync_orders_by_updated_at_and_limits(session, make_video_job):
    now = utcnow()
    newest = await make_video_job(updated_at=now - timedelta(minutes=1))
    oldest = await make_video_job(updated_at=now - timedelta(minutes=30))
    await make_video_job(updated_at=now - timedelta(minutes=10))

    jobs = await VideoJobRepository(session).get_stale_for_sync(
        lookback=timedelta(hours=24), limit=2
    )

    assert [job.id for job in jobs][0] == oldest.id
    assert newest.id not in {job.id for job in jobs}


@pytest.mark.asyncio
async def test_get_pending_relocation_respects_attempt_cap(session, make_video_job):
    due = await make_video_job(status=VideoStatus.COMPLETED, ephemeral_result_url="https://x")
    await make_video_job(
        status=VideoStatus.COMPLETED, ephemeral_result_url="https://x", relocation_attempts=5
    )
    await make_video_job(
        status=VideoStatus.COMPLETED,
        ephemeral_result_url="https://x",
        is_downloaded=True,
        durable_result_url="https://storage/done.mp4",
    )
    await make_video_job(status=VideoStatus.PROCESSING)

    jobs = await VideoJobRepository(session).get_pending_relocation(max_attempts=5)

    assert [job.id for job in jobs] == [due.id]
