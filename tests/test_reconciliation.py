"""Unit tests for the pure reconciliation rules.

reconcile() decides how a provider report changes a job; no database involved.
"""

from datetime import datetime
from uuid import uuid4

import pytest

from tutorcast.models.video_job import VideoJob, VideoStatus
from tutorcast.services.heygen.client import ProviderVideoStatus
from tutorcast.services.video_generation.reconciliation import normalize_status, reconcile

NOW = datetime(2026, 10, 19, 12, 0, 0)
RESULT_URL = "https://files.heygen.ai/v/vid_1.mp4?Expires=1999999999&Signature=abc"


def make_job(status: VideoStatus = VideoStatus.PROCESSING, **overrides) -> VideoJob:
    values = {
        "avatar_id": uuid4(),
        "voice_id": uuid4(),
        "input_text": "Hello",
        "status": status,
        "provider_job_id": "vid_1",
        "webhook_secret": "s" * 64,
    }
    values.update(overrides)
    return VideoJob(**values)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("completed", VideoStatus.COMPLETED),
        ("COMPLETED", VideoStatus.COMPLETED),
        (" Processing ", VideoStatus.PROCESSING),
        ("waiting", VideoStatus.WAITING),
        ("pending", VideoStatus.PENDING),
        ("failed", VideoStatus.FAILED),
        ("rendering", None),
        ("", None),
        (None, None),
    ],
)
def test_normalize_status(raw, expected):
    assert normalize_status(raw) == expected


def test_completed_sets_result_fields_and_requests_relocation():
    job = make_job(error_message="old", last_error="old")
    report = ProviderVideoStatus(
        status="completed", video_url=RESULT_URL, thumbnail_url="https://t/1.jpg", duration=42.5
    )

    update = reconcile(job, report, NOW)

    assert update is not None
    assert update.status == VideoStatus.COMPLETED
    assert update.relocate is True
    assert update.values["ephemeral_result_url"] == RESULT_URL
    assert update.values["thumbnail_url"] == "https://t/1.jpg"
    assert update.values["duration_seconds"] == 42.5
    assert update.values["completed_at"] == NOW
    assert update.values["error_message"] is None
    assert update.values["last_error"] is None


def test_completed_without_url_is_failure():
    update = reconcile(make_job(), ProviderVideoStatus(status="completed"), NOW)

    assert update is not None
    assert update.status == VideoStatus.FAILED
    assert "without a result URL" in update.values["error_message"]
    assert update.relocate is False


def test_failed_records_error_in_both_fields():
    report = ProviderVideoStatus(status="failed", error_message="avatar not found")

    update = reconcile(make_job(), report, NOW)

    assert update.status == VideoStatus.FAILED
    assert update.values["error_message"] == "avatar not found"
    assert update.values["last_error"] == "avatar not found"


def test_failed_error_message_is_truncated():
    report = ProviderVideoStatus(status="failed", error_message="x" * 5000)

    update = reconcile(make_job(), report, NOW)

    assert len(update.values["error_message"]) == 1000


def test_unknown_status_maps_to_failed_with_raw_value():
    update = reconcile(make_job(), ProviderVideoStatus(status="exploded"), NOW)

    assert update.status == VideoStatus.FAILED
    assert "exploded" in update.values["error_message"]


@pytest.mark.parametrize("incoming", ["pending", "waiting", "processing"])
def test_non_terminal_sets_status_only(incoming):
    update = reconcile(make_job(VideoStatus.PENDING), ProviderVideoStatus(status=incoming), NOW)

    assert update.status == VideoStatus(incoming)
    assert update.values == {}
    assert update.relocate is False


@pytest.mark.parametrize("incoming", ["pending", "waiting", "processing", "failed"])
def test_completed_job_is_never_downgraded(incoming):
    job = make_job(VideoStatus.COMPLETED, ephemeral_result_url=RESULT_URL)

    assert reconcile(job, ProviderVideoStatus(status=incoming), NOW) is None


@pytest.mark.parametrize("incoming", ["pending", "processing", "completed"])
def test_failed_job_is_never_changed_by_other_status(incoming):
    job = make_job(VideoStatus.FAILED)
    report = ProviderVideoStatus(status=incoming, video_url=RESULT_URL)

    assert reconcile(job, report, NOW) is None


def test_repeated_completion_refreshes_url_but_keeps_completed_at():
    first_completed = datetime(2026, 10, 19, 11, 0, 0)
    job = make_job(
        VideoStatus.COMPLETED, ephemeral_result_url="https://old", completed_at=first_completed
    )
    report = ProviderVideoStatus(status="completed", video_url=RESULT_URL)

    update = reconcile(job, report, NOW)

    assert update.status == VideoStatus.COMPLETED
    assert update.values["ephemeral_result_url"] == RESULT_URL
    assert update.values["completed_at"] == first_completed


def test_repeated_completion_after_relocation_does_not_relocate_again():
    job = make_job(
        VideoStatus.COMPLETED,
        ephemeral_result_url=RESULT_URL,
        is_downloaded=True,
        durable_result_url="https://storage/videos/x.mp4",
    )

    update = reconcile(job, ProviderVideoStatus(status="completed", video_url=RESULT_URL), NOW)

    assert update.relocate is False
    assert "last_error" not in update.values


def test_job_without_provider_id_is_ignored():
    job = make_job(provider_job_id=None)

    assert reconcile(job, ProviderVideoStatus(status="completed", video_url=RESULT_URL), NOW) is None


def test_provider_metadata_is_kept():
    report = ProviderVideoStatus(status="processing", metadata={"callback_id": "abc"})

    update = reconcile(make_job(), report, NOW)

    assert update.values["provider_metadata"] == {"callback_id": "abc"}
