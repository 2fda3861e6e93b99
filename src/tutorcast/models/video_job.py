"""VideoJob entity - avatar video generation request with lifecycle status tracking."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, Text
from sqlmodel import Field, SQLModel

from tutorcast.core.timezone import utcnow


class VideoStatus(str, Enum):
    """Video job lifecycle status."""

    PENDING = "pending"
    WAITING = "waiting"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({VideoStatus.COMPLETED, VideoStatus.FAILED})
ACTIVE_STATUSES = frozenset({VideoStatus.PENDING, VideoStatus.WAITING, VideoStatus.PROCESSING})


class VideoJob(SQLModel, table=True):
    """VideoJob tracks one generation request from submission to durable storage.

    Input fields (avatar, voice, script, background, dimensions) are written once at
    creation. Status and result fields are owned by reconciliation; the durable URL and
    download markers are owned by asset relocation.
    """

    __tablename__ = "video_jobs"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    provider_job_id: Optional[str] = Field(default=None, max_length=255, unique=True, index=True)

    # Input spec (immutable)
    avatar_id: UUID = Field(foreign_key="avatars.id", index=True)
    voice_id: UUID = Field(foreign_key="voices.id", index=True)
    title: Optional[str] = Field(default=None, max_length=255)
    input_text: str = Field(sa_column=Column(Text, nullable=False))
    background_type: Optional[str] = Field(default=None, max_length=20)
    background_value: Optional[str] = Field(default=None, max_length=2048)
    background_play_style: Optional[str] = Field(default=None, max_length=20)
    dimension_width: int = Field(default=1280)
    dimension_height: int = Field(default=720)
    lesson_id: Optional[int] = Field(default=None, index=True)

    # Generation state
    status: VideoStatus = Field(default=VideoStatus.PENDING, index=True)
    ephemeral_result_url: Optional[str] = Field(default=None, sa_column=Column(Text))
    thumbnail_url: Optional[str] = Field(default=None, sa_column=Column(Text))
    duration_seconds: Optional[float] = Field(default=None)
    error_message: Optional[str] = Field(default=None, max_length=1000)
    last_error: Optional[str] = Field(default=None, max_length=1000)
    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=3, ge=0)
    webhook_secret: str = Field(max_length=128)
    provider_metadata: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    # Relocation state
    durable_result_url: Optional[str] = Field(default=None, sa_column=Column(Text))
    is_downloaded: bool = Field(default=False, index=True)
    downloaded_at: Optional[datetime] = Field(default=None)
    relocation_attempts: int = Field(default=0, ge=0)

    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = Field(default=None)

    @property
    def can_retry(self) -> bool:
        """True when the Retry Policy would accept a resubmission."""
        return self.status == VideoStatus.FAILED and self.retry_count < self.max_retries

    @property
    def durable_storage_key(self) -> str:
        """Deterministic object key for the relocated asset."""
        return f"videos/{self.id}.mp4"
