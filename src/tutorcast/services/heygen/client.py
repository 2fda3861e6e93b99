"""HeyGen API client for avatar video generation with error classification.

Stateless request/response translation: builds provider payloads, parses the several
response shapes the provider uses across API versions, and normalizes failures into the
ProviderError family (which always carries HTTP status and raw body when available).
"""

from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
import structlog

from tutorcast.services.exceptions import (
    ProviderError,
    ProviderPermanentError,
    ProviderResponseError,
    ProviderTransientError,
)

logger = structlog.get_logger(__name__)

DEFAULT_API_URL = "https://api.heygen.com"
DEFAULT_UPLOAD_URL = "https://upload.heygen.com"


@dataclass(frozen=True)
class ProviderVideoStatus:
    """Provider-reported state of one video, as returned by status queries or webhooks."""

    status: str
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    duration: Optional[float] = None
    error_message: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class VideoRequest:
    """Provider-level description of a generation request (resolved provider ids)."""

    provider_avatar_id: str
    avatar_style: str
    provider_voice_id: str
    input_text: str
    width: int
    height: int
    title: Optional[str] = None
    background_type: Optional[str] = None
    background_value: Optional[str] = None
    background_play_style: Optional[str] = None
    callback_id: Optional[str] = None


def build_video_payload(request: VideoRequest) -> dict[str, Any]:
    """Build the JSON body for POST /v2/video/generate.

    Args:
        request: Resolved generation request

    Returns:
        Provider payload dictionary
    """
    video_input: dict[str, Any] = {
        "character": {
            "type": "avatar",
            "avatar_id": request.provider_avatar_id,
            "avatar_style": request.avatar_style,
        },
        "voice": {
            "type": "text",
            "input_text": request.input_text,
            "voice_id": request.provider_voice_id,
        },
    }

    if request.background_type:
        background: dict[str, Any] = {"type": request.background_type}
        if request.background_type == "color":
            background["value"] = request.background_value
        elif request.background_type == "image":
            background["url"] = request.background_value
        else:
            background["url"] = request.background_value
            if request.background_play_style:
                background["play_style"] = request.background_play_style
        video_input["background"] = background

    payload: dict[str, Any] = {
        "video_inputs": [video_input],
        "dimension": {"width": request.width, "height": request.height},
        "test": False,
    }
    if request.title:
        payload["title"] = request.title
    if request.callback_id:
        payload["callback_id"] = request.callback_id

    return payload


def extract_video_id(body: Any) -> str:
    """Extract the provider job identifier from a generate-video response.

    Recognized shapes (checked in order):
        - direct:  {"video_id": "..."}
        - wrapped: {"data": {"video_id": "..."}}
        - legacy:  {"data": {"id": "..."}}

    Args:
        body: Parsed JSON response body

    Returns:
        Non-empty provider video id

    Raises:
        ProviderResponseError: If no recognizable identifier is present
    """
    if isinstance(body, dict):
        direct = body.get("video_id")
        if isinstance(direct, str) and direct.strip():
            return direct.strip()

        data = body.get("data")
        if isinstance(data, dict):
            for key in ("video_id", "id"):
                value = data.get(key)
                if isinstance(value, str) and value.strip():
                    return value.strip()

    raise ProviderResponseError(
        "Provider accepted the request but returned no video id",
        status_code=200,
        body=_truncate(repr(body)),
    )


def parse_status_body(body: Any) -> ProviderVideoStatus:
    """Parse a video status response (direct fields or "data" wrapper).

    Raises:
        ProviderResponseError: If no status field can be found
    """
    if not isinstance(body, dict):
        raise ProviderResponseError("Malformed status response", body=_truncate(repr(body)))

    data = body.get("data") if isinstance(body.get("data"), dict) else body
    raw_status = data.get("status")
    if not isinstance(raw_status, str) or not raw_status.strip():
        raise ProviderResponseError(
            "Status response carries no status field", body=_truncate(repr(body))
        )

    return ProviderVideoStatus(
        status=raw_status.strip(),
        video_url=data.get("video_url") or None,
        thumbnail_url=data.get("thumbnail_url") or None,
        duration=_parse_duration(data.get("duration")),
        error_message=_parse_error(data.get("error") or data.get("error_message")),
        metadata=data.get("metadata") if isinstance(data.get("metadata"), dict) else {},
    )


def _parse_duration(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_error(value: Any) -> Optional[str]:
    if not value:
        return None
    if isinstance(value, dict):
        parts = [str(value[key]) for key in ("code", "message", "detail") if value.get(key)]
        return ": ".join(parts) or repr(value)
    return str(value)


def _truncate(text: str, limit: int = 2000) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


class HeyGenClient:
    """Video generation client for the HeyGen API."""

    def __init__(
        self,
        api_key: str,
        api_url: str = DEFAULT_API_URL,
        upload_url: str = DEFAULT_UPLOAD_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize HeyGen client.

        Args:
            api_key: HeyGen API key (from HEYGEN_API_KEY env var)
            api_url: API base URL
            upload_url: Asset upload base URL
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.api_key = api_key
        self.api_url = api_url.rstrip("/")
        self.upload_url = upload_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.headers = {
            "X-Api-Key": api_key,
            "Accept": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def generate_video(self, payload: dict[str, Any]) -> str:
        """Submit a generation request.

        Args:
            payload: Body built by build_video_payload()

        Returns:
            Provider video id

        Raises:
            ProviderTransientError: Timeout, connection error, 429, 5xx
            ProviderPermanentError: 4xx (auth, validation)
            ProviderResponseError: 2xx without a usable video id
        """
        body = await self._request("POST", f"{self.api_url}/v2/video/generate", json=payload)
        video_id = extract_video_id(body)
        logger.info("heygen.video_submitted", provider_job_id=video_id)
        return video_id

    async def get_video_status(self, provider_job_id: str) -> ProviderVideoStatus:
        """Query the current status of a video.

        Raises:
            ProviderTransientError / ProviderPermanentError / ProviderResponseError
        """
        body = await self._request(
            "GET",
            f"{self.api_url}/v1/video_status.get",
            params={"video_id": provider_job_id},
        )
        return parse_status_body(body)

    async def upload_image_asset(self, content: bytes, content_type: str = "image/jpeg") -> str:
        """Upload an image asset (e.g. a talking-photo source) to the provider.

        Args:
            content: Raw image bytes
            content_type: MIME type of the image

        Returns:
            Provider asset key (image_key)
        """
        if not content_type.startswith("image/"):
            raise ProviderPermanentError(f"Unsupported asset content type: {content_type}")

        body = await self._request(
            "POST",
            f"{self.upload_url}/v1/asset",
            content=content,
            headers={"Content-Type": content_type},
        )
        data = body.get("data") if isinstance(body, dict) else None
        image_key = data.get("image_key") if isinstance(data, dict) else None
        if not image_key:
            raise ProviderResponseError(
                "Asset upload returned no image_key", status_code=200, body=_truncate(repr(body))
            )
        return image_key

    async def delete_video(self, provider_job_id: str) -> None:
        """Cancel / delete a video at the provider."""
        await self._request(
            "DELETE",
            f"{self.api_url}/v1/video.delete",
            params={"video_id": provider_job_id},
        )

    async def _request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> Any:
        """Perform one HTTP call and classify failures.

        Returns:
            Parsed JSON body (or None for empty bodies)
        """
        if not self.api_key:
            raise ProviderPermanentError("HEYGEN_API_KEY not configured")

        request_headers = {**self.headers, **(headers or {})}
        try:
            async with self._client() as client:
                response = await client.request(method, url, headers=request_headers, **kwargs)
        except httpx.TimeoutException as e:
            raise ProviderTransientError(f"Request timeout after {self.timeout}s: {e}") from e
        except httpx.HTTPError as e:
            raise ProviderTransientError(f"Network error: {e}") from e

        text = response.text
        if response.status_code == 429:
            raise ProviderTransientError("Rate limit exceeded", response.status_code, text)
        if response.status_code >= 500:
            raise ProviderTransientError("Provider unavailable", response.status_code, text)
        if response.status_code in (401, 403):
            raise ProviderPermanentError(
                "Authentication failed. Check HEYGEN_API_KEY configuration",
                response.status_code,
                text,
            )
        if response.status_code >= 400:
            raise ProviderPermanentError("Request rejected", response.status_code, text)

        if not text:
            return None
        try:
            body = response.json()
        except ValueError as e:
            raise ProviderResponseError(
                "Provider returned non-JSON body", response.status_code, _truncate(text)
            ) from e

        if isinstance(body, dict) and body.get("error"):
            raise ProviderPermanentError(
                _parse_error(body["error"]) or "Provider reported an error",
                response.status_code,
                _truncate(text),
            )
        return body


__all__ = [
    "HeyGenClient",
    "ProviderError",
    "ProviderVideoStatus",
    "VideoRequest",
    "build_video_payload",
    "extract_video_id",
    "parse_status_body",
]
