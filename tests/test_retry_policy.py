"""Retry Policy tests.

Tests the bounded retry contract:
- Successful resubmission: new provider id, new secret, pending, retry_count + 1, prior
  result and error fields cleared
- Ineligible jobs (not failed, retries exhausted) raise RetryPolicyError with retry_count
  unchanged and no provider call
- A resubmission that fails again still consumes the retry
"""

from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from sqlalchemy import delete

from tutorcast.models.video_job import VideoJob, VideoStatus
from tutorcast.services.exceptions import (
    ProviderPermanentError,
    RetryPolicyError,
    VideoJobNotFoundError,
)
from tutorcast.services.heygen.client import HeyGenClient
from tutorcast.services.video_generation.retry_policy import RetryPolicy


@pytest.fixture
def client():
    client = AsyncMock(spec=HeyGenClient)
    client.generate_video.return_value = "vid_retried"
    return client


@pytest.mark.asyncio
async def test_retry_resubmits_failed_job(uow_factory, client, make_video_job):
    job = await make_video_job(
        status=VideoStatus.FAILED,
        provider_job_id="vid_first",
        error_message="Provider unavailable (HTTP 500)",
        last_error="Provider unavailable (HTTP 500)",
        retry_count=0,
        max_retries=3,
    )

    async with await uow_factory() as uow:
        retried = await RetryPolicy(client).retry(uow, job.id)

    assert retried.status == VideoStatus.PENDING
    assert retried.provider_job_id == "vid_retried"
    assert retried.retry_count == 1
    assert retried.error_message is None
    assert retried.last_error is None
    assert retried.webhook_secret != job.webhook_secret
    client.generate_video.assert_awaited_once()

    # Same stored input spec is resubmitted
    payload = client.generate_video.await_args.args[0]
    assert payload["video_inputs"][0]["voice"]["input_text"] == job.input_text


@pytest.mark.asyncio
async def test_retry_clears_prior_result_fields(uow_factory, client, make_video_job):
    job = await make_video_job(
        status=VideoStatus.FAILED,
        ephemeral_result_url="https://files.heygen.ai/old.mp4",
        thumbnail_url="https://files.heygen.ai/old.jpg",
        duration_seconds=12.0,
    )

    async with await uow_factory() as uow:
        retried = await RetryPolicy(client).retry(uow, job.id)

    assert retried.ephemeral_result_url is None
    assert retried.thumbnail_url is None
    assert retried.duration_seconds is None
    assert retried.completed_at is None


@pytest.mark.asyncio
async def test_retry_limit_leaves_retry_count_unchanged(uow_factory, client, make_video_job):
    """Test the retry bound: retry_count == max_retries is rejected."""
    job = await make_video_job(status=VideoStatus.FAILED, retry_count=3, max_retries=3)

    with pytest.raises(RetryPolicyError, match="Retry limit"):
        async with await uow_factory() as uow:
            await RetryPolicy(client).retry(uow, job.id)

    client.generate_video.assert_not_awaited()
    async with await uow_factory() as uow:
        stored = await uow.video_jobs.get_by_id(job.id)
    assert stored.retry_count == 3
    assert stored.status == VideoStatus.FAILED


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status", [VideoStatus.PENDING, VideoStatus.PROCESSING, VideoStatus.COMPLETED]
)
async def test_only_failed_jobs_can_be_retried(uow_factory, client, make_video_job, status):
    job = await make_video_job(status=status)

    with pytest.raises(RetryPolicyError):
        async with await uow_factory() as uow:
            await RetryPolicy(client).retry(uow, job.id)

    client.generate_video.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_resubmission_still_consumes_retry(uow_factory, client, make_video_job):
    job = await make_video_job(
        status=VideoStatus.FAILED, provider_job_id="vid_first", retry_count=1, max_retries=3
    )
    client.generate_video.side_effect = ProviderPermanentError(
        "Request rejected", status_code=400, body='{"message":"invalid voice"}'
    )

    async with await uow_factory() as uow:
        retried = await RetryPolicy(client).retry(uow, job.id)

    assert retried.status == VideoStatus.FAILED
    assert retried.retry_count == 2
    assert retried.provider_job_id == "vid_first"
    assert "HTTP 400" in retried.error_message
    assert retried.last_error == retried.error_message


@pytest.mark.asyncio
async def test_retries_stop_at_max_retries(uow_factory, client, make_video_job):
    job = await make_video_job(status=VideoStatus.FAILED, retry_count=0, max_retries=2)
    client.generate_video.side_effect = ProviderPermanentError("Request rejected", 400)
    policy = RetryPolicy(client)

    for _ in range(2):
        async with await uow_factory() as uow:
            await policy.retry(uow, job.id)

    with pytest.raises(RetryPolicyError):
        async with await uow_factory() as uow:
            await policy.retry(uow, job.id)

    assert client.generate_video.await_count == 2
    async with await uow_factory() as uow:
        assert (await uow.video_jobs.get_by_id(job.id)).retry_count == 2


@pytest.mark.asyncio
async def test_retry_unknown_job(uow_factory, client):
    with pytest.raises(VideoJobNotFoundError):
        async with await uow_factory() as uow:
            await RetryPolicy(client).retry(uow, uuid4())


@pytest.mark.asyncio
async def test_job_deleted_during_resubmission(
    uow_factory, session_factory, client, make_video_job
):
    job = await make_video_job(status=VideoStatus.FAILED, retry_count=0, max_retries=3)

    async def delete_then_accept(payload):
        async with session_factory() as session:
            await session.execute(delete(VideoJob).where(VideoJob.id == job.id))
            await session.commit()
        return "vid_orphaned"

    client.generate_video.side_effect = delete_then_accept

    with pytest.raises(VideoJobNotFoundError):
        async with await uow_factory() as uow:
            await RetryPolicy(client).retry(uow, job.id)
