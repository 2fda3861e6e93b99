"""Repository layer for tutorcast backend.

Provides data access abstractions for all domain entities.
No base classes - each repository is self-contained.
"""

from tutorcast.repositories.catalog import AvatarRepository, VoiceRepository
from tutorcast.repositories.video_job import VideoJobRepository

__all__ = [
    "AvatarRepository",
    "VoiceRepository",
    "VideoJobRepository",
]
