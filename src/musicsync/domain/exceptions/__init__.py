"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing
    # str(exception). The orchestrator puts exactly this string into a provider's error status,
    # so keep messages short and human-readable - the UI shows them verbatim!
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class ValidationError(DomainException):
    """Input validation failed."""

    pass


# =============================================================================
# Sync errors
# Everything an adapter run can fail with. The orchestrator catches SyncError at
# the provider boundary and records it as that provider's status.
# =============================================================================


class SyncError(DomainException):
    """Base class for errors that fail a provider's sync phase."""

    pass


class SyncTimeoutError(SyncError):
    """Source did not respond within the allowed time."""

    def __init__(
        self,
        message: str = (
            "Loading is taking longer than expected. Check your connection and try again."
        ),
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(message)
        self.timeout_seconds = timeout_seconds


class RateLimitExceededError(SyncError):
    """Rate limit retries were exhausted.

    HTTP Status: 429
    """

    def __init__(
        self,
        message: str = "Too many rate limit retries",
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ExternalServiceError(SyncError):
    """Remote API answered with a non-2xx status.

    Example:
        raise ExternalServiceError(500, "Internal Server Error")
    """

    def __init__(self, status_code: int, message: str | None = None) -> None:
        if message:
            text = f"Spotify ({status_code}): {message}"
        else:
            text = f"Spotify error ({status_code})."
        super().__init__(text)
        self.status_code = status_code
        self.detail = message


class AuthenticationError(SyncError):
    """Credentials are missing or could not be refreshed.

    Example:
        raise AuthenticationError("Not connected to Spotify.")
    """

    def __init__(
        self,
        message: str = "Not connected to Spotify.",
        error_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code  # e.g. "invalid_grant"


class InvalidResponseError(SyncError):
    """Source returned a payload we could not decode."""

    def __init__(self, message: str = "Invalid response from Spotify.") -> None:
        super().__init__(message)


class StorageUnavailableError(SyncError):
    """No storage session to persist into, or a commit failed."""

    def __init__(self, message: str = "Storage not available") -> None:
        super().__init__(message)


__all__ = [
    "AuthenticationError",
    "DomainException",
    "ExternalServiceError",
    "InvalidResponseError",
    "RateLimitExceededError",
    "StorageUnavailableError",
    "SyncError",
    "SyncTimeoutError",
    "ValidationError",
]
