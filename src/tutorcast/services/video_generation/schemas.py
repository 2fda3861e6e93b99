"""Input spec validation for video generation requests.

Validates the caller's request before any catalog lookup or provider call.
"""

import re
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from tutorcast.services.heygen.client import ProviderVideoStatus

MAX_INPUT_TEXT_LENGTH = 5000
MIN_DIMENSION = 128
MAX_DIMENSION = 4096

# Markup characters and C0/C1 control characters
INVALID_TEXT_CHARS = re.compile(r'[<>"\x00-\x1f\x7f-\x9f]')
HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


def validate_input_text(text: str) -> str:
    """Validate the script the avatar will speak.

    Args:
        text: Script text

    Returns:
        Validated text (unchanged if valid)

    Raises:
        ValueError: If text is empty, longer than 5000 characters, or contains markup or
            control characters
    """
    if not text or not text.strip():
        raise ValueError("Input text cannot be empty")

    if len(text) > MAX_INPUT_TEXT_LENGTH:
        raise ValueError(
            f"Input text exceeds maximum length of {MAX_INPUT_TEXT_LENGTH} characters "
            f"(got {len(text)})"
        )

    if INVALID_TEXT_CHARS.search(text):
        raise ValueError("Input text contains invalid characters")

    return text


class VideoInputSpec(BaseModel):
    """Everything needed to (re)submit a generation request."""

    avatar_id: UUID = Field(..., description="Catalog avatar id")
    voice_id: UUID = Field(..., description="Catalog voice id")
    input_text: str = Field(..., description="Script spoken by the avatar")
    title: Optional[str] = Field(default=None, max_length=255)
    background_type: Optional[Literal["color", "image", "video"]] = None
    background_value: Optional[str] = Field(
        default=None,
        max_length=2048,
        description="Hex color for 'color', asset URL for 'image' and 'video'",
    )
    background_play_style: Optional[Literal["fit_to_scene", "freeze", "loop", "full_video"]] = None
    dimension_width: int = Field(default=1280, ge=MIN_DIMENSION, le=MAX_DIMENSION)
    dimension_height: int = Field(default=720, ge=MIN_DIMENSION, le=MAX_DIMENSION)
    lesson_id: Optional[int] = Field(default=None, ge=1)

    @field_validator("input_text")
    @classmethod
    def check_input_text(cls, v: str) -> str:
        return validate_input_text(v)

    @model_validator(mode="after")
    def check_background(self) -> "VideoInputSpec":
        """A background type needs a value; play style only applies to video backgrounds."""
        if self.background_type is None:
            if self.background_value or self.background_play_style:
                raise ValueError("background_value/background_play_style require background_type")
            return self

        if not self.background_value:
            raise ValueError(f"background_type '{self.background_type}' requires background_value")

        if self.background_type == "color":
            if not HEX_COLOR.match(self.background_value):
                raise ValueError("Color background must be a hex color like #FFFFFF")
        elif not self.background_value.startswith(("http://", "https://")):
            raise ValueError(f"{self.background_type} background must be an http(s) URL")

        if self.background_play_style and self.background_type != "video":
            raise ValueError("background_play_style only applies to video backgrounds")

        return self


SUPPORTED_WEBHOOK_EVENTS = frozenset(
    {"video.completed", "video.failed", "video.processing", "video.pending", "video.waiting"}
)


class VideoWebhookData(BaseModel):
    """Provider-reported video state inside a webhook payload."""

    video_id: str = Field(..., min_length=1)
    status: str = Field(..., min_length=1)
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    duration: Optional[float] = None
    error_message: Optional[str] = None
    metadata: Optional[dict] = None


class VideoWebhookPayload(BaseModel):
    """Inbound provider webhook body."""

    event: str
    data: VideoWebhookData
    timestamp: int | float | str
    signature: Optional[str] = None

    @field_validator("event")
    @classmethod
    def check_event(cls, v: str) -> str:
        if v not in SUPPORTED_WEBHOOK_EVENTS:
            raise ValueError(f"Unsupported webhook event: {v}")
        return v

    def to_status_report(self) -> ProviderVideoStatus:
        """Convert into the report shape shared with status polling."""
        return ProviderVideoStatus(
            status=self.data.status,
            video_url=self.data.video_url or None,
            thumbnail_url=self.data.thumbnail_url or None,
            duration=self.data.duration,
            error_message=self.data.error_message or None,
            metadata=self.data.metadata or {},
        )
