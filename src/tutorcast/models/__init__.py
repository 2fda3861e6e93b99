"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
for Alembic autogenerate support.
"""

from tutorcast.models.catalog import Avatar, Voice
from tutorcast.models.video_job import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    VideoJob,
    VideoStatus,
)

__all__ = [
    "Avatar",
    "Voice",
    "VideoJob",
    "VideoStatus",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
]
