"""Avatar and Voice catalog entities - provider references a video job may use."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from pydantic import field_validator
from sqlmodel import Field, SQLModel

from tutorcast.core.timezone import utcnow

AVATAR_STYLES = ("normal", "circle", "closeUp")


class Avatar(SQLModel, table=True):
    """Avatar registered with the video provider."""

    __tablename__ = "avatars"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    provider_avatar_id: str = Field(max_length=255, unique=True, index=True)
    name: str = Field(max_length=255)
    avatar_style: str = Field(default="normal", max_length=20)
    preview_image_url: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("avatar_style")
    @classmethod
    def validate_avatar_style(cls, v: str) -> str:
        if v not in AVATAR_STYLES:
            raise ValueError(f"avatar_style must be one of {', '.join(AVATAR_STYLES)}")
        return v


class Voice(SQLModel, table=True):
    """Voice registered with the video provider."""

    __tablename__ = "voices"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    provider_voice_id: str = Field(max_length=255, unique=True, index=True)
    name: str = Field(max_length=255)
    language: Optional[str] = Field(default=None, max_length=50)
    gender: Optional[str] = Field(default=None, max_length=20)
    created_at: datetime = Field(default_factory=utcnow)
