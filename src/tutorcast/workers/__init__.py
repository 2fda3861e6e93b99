"""Background workers for async processing tasks."""

from tutorcast.workers.video_sync_worker import (
    SweepResult,
    VideoSyncSweeper,
    run_video_sync_worker,
    sync_single_job,
)

__all__ = [
    "SweepResult",
    "VideoSyncSweeper",
    "run_video_sync_worker",
    "sync_single_job",
]
