"""Service error hierarchy for video generation, storage and relocation.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors
- TransientError: Retryable errors (network, rate limits, timeouts)
- PermanentError: Non-retryable errors (authentication, validation)
- Domain errors raised before any external call (validation, retry policy)
"""


class ServiceError(Exception):
    """Base exception for all service errors."""

    pass


class TransientError(ServiceError):
    """Transient error that may succeed on retry.

    Examples:
    - Network timeouts
    - Rate limit exceeded (429)
    - Service unavailable (5xx)
    """

    pass


class PermanentError(ServiceError):
    """Permanent error that will not succeed on retry.

    Examples:
    - Authentication failures (401, 403)
    - Invalid request parameters (400)
    - Configuration errors
    """

    pass


# Provider (HeyGen) errors
class ProviderError(ServiceError):
    """Base exception for video provider errors.

    Carries the provider HTTP status and raw response body for diagnostics.
    Transport failures (timeouts, connection errors) have no status code.
    """

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        message = super().__str__()
        if self.status_code is not None:
            message = f"{message} (HTTP {self.status_code})"
        if self.body:
            message = f"{message}: {self.body[:500]}"
        return message


class ProviderTransientError(ProviderError, TransientError):
    """Timeout, connection failure, rate limit or provider 5xx."""

    pass


class ProviderPermanentError(ProviderError, PermanentError):
    """Authentication failure or rejected request (4xx)."""

    pass


class ProviderResponseError(ProviderError, PermanentError):
    """Provider answered 2xx but the body carries no usable data (e.g. no video id)."""

    pass


# Durable storage errors
class StorageError(ServiceError):
    """Base exception for durable storage errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StorageNetworkError(StorageError, TransientError):
    """Network timeout or storage service unavailable."""

    pass


class StorageAuthError(StorageError, PermanentError):
    """Authentication failure (401, 403)."""

    pass


# Relocation errors
class RelocationError(ServiceError):
    """Base exception for asset relocation errors."""

    pass


class RelocationValidationError(RelocationError, PermanentError):
    """Ephemeral URL is malformed, unsigned or already expired."""

    pass


class RelocationDownloadError(RelocationError, TransientError):
    """Download failed or the downloaded asset failed size/content-type checks."""

    pass


class RelocationVerificationError(RelocationError, TransientError):
    """Uploaded object is not publicly fetchable."""

    pass


# Domain errors
class VideoValidationError(ServiceError):
    """Input spec rejected before any provider call (unknown avatar/voice, bad text)."""

    pass


class VideoJobNotFoundError(ServiceError):
    """No video job with the requested identifier."""

    pass


class RetryPolicyError(ServiceError):
    """Retry requested for a job that is not eligible (not failed or retries exhausted)."""

    pass
