"""Supabase Storage client for durable video assets."""

from urllib.parse import quote

import httpx
import structlog

from tutorcast.services.exceptions import StorageAuthError, StorageError, StorageNetworkError

logger = structlog.get_logger(__name__)


class SupabaseStorageClient:
    """Durable object storage backed by a Supabase Storage bucket."""

    def __init__(
        self,
        url: str,
        service_key: str,
        bucket: str = "videos",
        timeout: float = 180.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize Supabase Storage client.

        Args:
            url: Supabase project URL (from SUPABASE_URL env var)
            service_key: Service role key (from SUPABASE_SERVICE_KEY env var)
            bucket: Public bucket that receives relocated assets
            timeout: Per-request timeout in seconds (uploads can be large)
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = url.rstrip("/")
        self.bucket = bucket
        self.timeout = timeout
        self.transport = transport
        self.headers = {
            "Authorization": f"Bearer {service_key}",
            "apikey": service_key,
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    def _object_path(self, key: str) -> str:
        return f"{self.bucket}/{quote(key.lstrip('/'))}"

    def get_public_url(self, key: str) -> str:
        """Public URL of an object in the bucket.

        Args:
            key: Object key (e.g. "videos/<job-id>.mp4")

        Returns:
            URL that serves the object without credentials
        """
        return f"{self.base_url}/storage/v1/object/public/{self._object_path(key)}"

    async def put(self, key: str, content: bytes, content_type: str = "video/mp4") -> str:
        """Upload (or overwrite) an object.

        Args:
            key: Deterministic object key
            content: Object bytes
            content_type: MIME type stored with the object

        Returns:
            Public URL of the uploaded object

        Raises:
            StorageNetworkError: Timeout, connection error, 429, 5xx
            StorageAuthError: Invalid service key (401, 403)
            StorageError: Other rejected uploads (400, 413, ...)
        """
        headers = {**self.headers, "Content-Type": content_type, "x-upsert": "true"}
        response = await self._request(
            "POST",
            f"{self.base_url}/storage/v1/object/{self._object_path(key)}",
            headers=headers,
            content=content,
        )
        self._raise_for_status(response)

        logger.info("storage.object_uploaded", key=key, size_bytes=len(content))
        return self.get_public_url(key)

    async def exists(self, key: str) -> bool:
        """Check whether an object already exists in the bucket.

        Raises:
            StorageNetworkError / StorageAuthError / StorageError
        """
        response = await self._request(
            "GET",
            f"{self.base_url}/storage/v1/object/info/{self._object_path(key)}",
            headers=self.headers,
        )
        if response.status_code == 404:
            return False
        # Older Storage API versions answer 400 {"error": "not_found"} for missing objects
        if response.status_code == 400 and "not_found" in response.text.replace(" ", "_").lower():
            return False
        self._raise_for_status(response)
        return True

    async def is_publicly_fetchable(self, url: str) -> bool:
        """HEAD the public URL without credentials.

        Returns:
            True if the object is served (2xx), False otherwise
        """
        try:
            async with self._client() as client:
                response = await client.head(url, follow_redirects=True)
        except httpx.HTTPError as e:
            logger.warning("storage.head_failed", url=url, error=str(e))
            return False

        if not response.is_success:
            logger.warning("storage.head_rejected", url=url, status_code=response.status_code)
            return False
        return True

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            async with self._client() as client:
                return await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise StorageNetworkError(f"Request timeout after {self.timeout}s: {str(e)}") from e
        except httpx.HTTPError as e:
            raise StorageNetworkError(f"Network error: {str(e)}") from e

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        status_code = response.status_code
        if response.is_success:
            return
        if status_code == 429 or status_code >= 500:
            raise StorageNetworkError(
                f"Storage unavailable ({status_code}): {response.text[:500]}", status_code
            )
        if status_code in (401, 403):
            raise StorageAuthError(
                "Unauthorized: Check SUPABASE_SERVICE_KEY configuration", status_code
            )
        raise StorageError(f"Storage request rejected ({status_code}): {response.text[:500]}", status_code)
