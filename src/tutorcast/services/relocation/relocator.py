"""Asset relocation: copy a provider's expiring result video into durable storage.

The provider hands out signed, time-limited URLs. Before they expire the video is
downloaded to a local staging file, uploaded under a deterministic key and verified to be
publicly fetchable. Relocation is idempotent: an already relocated job costs no network
calls, and an object that already exists under the key is not uploaded twice.
"""

import asyncio
import os
import tempfile
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable
from urllib.parse import parse_qs, urlparse

import httpx
import structlog

from tutorcast.core.config import Settings
from tutorcast.models.video_job import VideoJob
from tutorcast.services.exceptions import (
    RelocationDownloadError,
    RelocationError,
    RelocationValidationError,
    RelocationVerificationError,
    StorageError,
)
from tutorcast.services.storage.supabase_client import SupabaseStorageClient

logger = structlog.get_logger(__name__)

EXPIRY_MARKERS = ("Expires", "X-Amz-Expires", "exp")
SIGNATURE_MARKERS = ("Signature", "X-Amz-Signature", "sig", "token")
ALLOWED_CONTENT_TYPES = ("video/", "application/octet-stream")
CHUNK_SIZE = 1024 * 1024


def _first(query: dict[str, list[str]], name: str) -> str | None:
    # Query marker names are matched case-insensitively
    for key, values in query.items():
        if key.lower() == name.lower() and values:
            return values[0]
    return None


def url_expires_at(url: str) -> float | None:
    """Expiry of a signed URL as a Unix timestamp, if it can be determined.

    Supports absolute expiry markers (Expires=<epoch>, exp=<epoch>) and the SigV4 form
    (X-Amz-Date=<YYYYMMDDTHHMMSSZ> plus X-Amz-Expires=<seconds>).
    """
    query = parse_qs(urlparse(url).query)

    amz_expires = _first(query, "X-Amz-Expires")
    amz_date = _first(query, "X-Amz-Date")
    if amz_expires is not None and amz_date is not None:
        try:
            signed_at = datetime.strptime(amz_date, "%Y%m%dT%H%M%SZ").replace(tzinfo=timezone.utc)
            return signed_at.timestamp() + int(amz_expires)
        except ValueError:
            return None

    for marker in ("Expires", "exp"):
        value = _first(query, marker)
        if value is not None:
            try:
                return float(value)
            except ValueError:
                return None
    return None


def validate_ephemeral_url(url: str | None, now: float | None = None) -> None:
    """Reject ephemeral URLs that cannot possibly be downloaded.

    Args:
        url: Provider result URL
        now: Reference Unix time (defaults to time.time())

    Raises:
        RelocationValidationError: Missing, non-https, malformed, unsigned or expired URL
    """
    if not url:
        raise RelocationValidationError("Job has no ephemeral result URL")

    parsed = urlparse(url)
    if parsed.scheme != "https" or not parsed.netloc:
        raise RelocationValidationError(f"Ephemeral URL must be a well-formed https URL: {url}")

    query = parse_qs(parsed.query)
    if not any(_first(query, marker) for marker in EXPIRY_MARKERS):
        raise RelocationValidationError("Ephemeral URL carries no expiry marker")
    if not any(_first(query, marker) for marker in SIGNATURE_MARKERS):
        raise RelocationValidationError("Ephemeral URL carries no signature marker")

    expires_at = url_expires_at(url)
    if expires_at is None:
        raise RelocationValidationError("Ephemeral URL expiry is unreadable")
    if expires_at <= (now if now is not None else time.time()):
        raise RelocationValidationError(
            f"Ephemeral URL expired at {datetime.fromtimestamp(expires_at, timezone.utc).isoformat()}"
        )


class _RetryableDownload(Exception):
    """Download attempt failed in a way another attempt may fix."""


class AssetRelocator:
    """Moves completed videos from provider URLs into durable storage."""

    def __init__(
        self,
        storage: SupabaseStorageClient,
        min_bytes: int = 10 * 1024,
        max_bytes: int = 500 * 1024 * 1024,
        download_attempts: int = 3,
        backoff_seconds: float = 1.0,
        timeout: float = 180.0,
        staging_dir: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.storage = storage
        self.min_bytes = min_bytes
        self.max_bytes = max_bytes
        self.download_attempts = max(1, download_attempts)
        self.backoff_seconds = backoff_seconds
        self.timeout = timeout
        self.staging_dir = staging_dir
        self.transport = transport
        self.sleep = sleep

    @classmethod
    def from_settings(
        cls,
        storage: SupabaseStorageClient,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "AssetRelocator":
        return cls(
            storage=storage,
            min_bytes=settings.relocation_min_bytes,
            max_bytes=settings.relocation_max_bytes,
            download_attempts=settings.relocation_download_attempts,
            backoff_seconds=settings.relocation_backoff_seconds,
            timeout=settings.storage_timeout_seconds,
            staging_dir=settings.relocation_staging_dir,
            transport=transport,
        )

    async def relocate(self, job: VideoJob) -> str:
        """Relocate a completed job's result video.

        Workflow:
        1. Already relocated: return durable_result_url (no network calls)
        2. Validate the ephemeral URL (https, signed, not expired)
        3. Probe durable storage for the deterministic key; skip upload if present
        4. Download to a staging file (bounded retries, size and content-type checks)
        5. Upload staged bytes under the deterministic key
        6. HEAD the public URL
        7. Delete the staging file (always)

        Args:
            job: Completed video job

        Returns:
            Public durable URL

        Raises:
            RelocationValidationError: URL unusable, nothing downloaded
            RelocationDownloadError: Download or staging failed, or asset out of bounds
            RelocationVerificationError: Uploaded object is not publicly served
            RelocationError: Durable storage rejected the operation
        """
        if job.is_downloaded and job.durable_result_url:
            logger.debug("relocation.already_done", job_id=str(job.id))
            return job.durable_result_url

        validate_ephemeral_url(job.ephemeral_result_url)

        key = job.durable_storage_key
        log = logger.bind(job_id=str(job.id), key=key)

        try:
            if await self.storage.exists(key):
                log.info("relocation.object_exists")
                public_url = self.storage.get_public_url(key)
            else:
                public_url = await self._download_and_upload(job.ephemeral_result_url, key)  # type: ignore[arg-type]
        except StorageError as e:
            raise RelocationError(f"Durable storage error: {str(e)}") from e

        if not await self.storage.is_publicly_fetchable(public_url):
            raise RelocationVerificationError(f"Relocated object is not publicly fetchable: {public_url}")

        log.info("relocation.succeeded", durable_url=public_url)
        return public_url

    async def _download_and_upload(self, url: str, key: str) -> str:
        try:
            fd, staging_path = tempfile.mkstemp(
                suffix=".mp4", prefix="relocation-", dir=self.staging_dir
            )
            os.close(fd)
        except OSError as e:
            raise RelocationDownloadError(f"Staging file could not be created: {str(e)}") from e

        try:
            content_type = await self._download_with_retry(url, staging_path)
            try:
                content = await asyncio.to_thread(self._read_file, staging_path)
            except OSError as e:
                raise RelocationDownloadError(f"Staging file could not be read: {str(e)}") from e
            upload_type = content_type if content_type.startswith("video/") else "video/mp4"
            return await self.storage.put(key, content, content_type=upload_type)
        finally:
            try:
                os.unlink(staging_path)
            except FileNotFoundError:
                pass

    @staticmethod
    def _read_file(path: str) -> bytes:
        with open(path, "rb") as f:
            return f.read()

    async def _download_with_retry(self, url: str, staging_path: str) -> str:
        for attempt in range(1, self.download_attempts + 1):
            try:
                return await self._download(url, staging_path)
            except _RetryableDownload as e:
                if attempt == self.download_attempts:
                    raise RelocationDownloadError(
                        f"Download failed after {attempt} attempts: {str(e)}"
                    ) from e
                delay = self.backoff_seconds * (2 ** (attempt - 1))
                logger.warning(
                    "relocation.download.retry",
                    attempt=attempt,
                    error=str(e),
                    retry_in_seconds=delay,
                )
                await self.sleep(delay)

        raise RelocationDownloadError("Download was not attempted")  # pragma: no cover

    async def _download(self, url: str, staging_path: str) -> str:
        """Stream one download attempt into the staging file.

        Returns:
            Response content type
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport, follow_redirects=True
            ) as client:
                async with client.stream("GET", url) as response:
                    if response.status_code == 429 or response.status_code >= 500:
                        raise _RetryableDownload(f"HTTP {response.status_code}")
                    if not response.is_success:
                        raise RelocationDownloadError(
                            f"Download rejected with HTTP {response.status_code}"
                        )

                    content_type = response.headers.get("content-type", "").split(";")[0].strip()
                    if not content_type.lower().startswith(ALLOWED_CONTENT_TYPES):
                        raise RelocationDownloadError(
                            f"Unexpected content type: {content_type or 'missing'}"
                        )

                    declared = response.headers.get("content-length")
                    if declared and declared.isdigit() and int(declared) > self.max_bytes:
                        raise RelocationDownloadError(
                            f"Asset too large: {declared} bytes > {self.max_bytes}"
                        )

                    size = 0
                    with open(staging_path, "wb") as staging:
                        async for chunk in response.aiter_bytes(CHUNK_SIZE):
                            size += len(chunk)
                            if size > self.max_bytes:
                                raise RelocationDownloadError(
                                    f"Asset too large: more than {self.max_bytes} bytes"
                                )
                            staging.write(chunk)
        except httpx.HTTPError as e:
            raise _RetryableDownload(f"{type(e).__name__}: {str(e)}") from e
        except OSError as e:
            raise RelocationDownloadError(f"Staging write failed: {str(e)}") from e

        if size < self.min_bytes:
            raise RelocationDownloadError(f"Asset too small: {size} bytes < {self.min_bytes}")

        logger.debug("relocation.download.completed", size_bytes=size, content_type=content_type)
        return content_type
