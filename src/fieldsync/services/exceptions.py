"""Service error hierarchy for uploads and local media access.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors
- TransientError: Retryable errors (network, rate limits, timeouts, 5xx)
- PermanentError: Errors a later attempt will not fix on its own (rejected requests)
- MediaStoreError: Local artifact could not be saved or resolved
"""


class ServiceError(Exception):
    """Base exception for all service errors."""

    pass


class TransientError(ServiceError):
    """Transient error that may succeed on retry.

    Examples:
    - Network timeouts
    - Connection refused
    - Rate limit exceeded (429)
    - Server errors (5xx)
    """

    pass


class PermanentError(ServiceError):
    """Permanent error that will not succeed on retry without intervention.

    Examples:
    - Authentication failures (401, 403)
    - Invalid request parameters (400, 422)
    """

    pass


# Upload-specific errors
class UploadNetworkError(TransientError):
    """Network timeout or transport failure."""

    pass


class UploadRateLimitError(TransientError):
    """Rate limit exceeded (429)."""

    pass


class UploadServerError(TransientError):
    """Backend answered with a 5xx status."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class UploadRejectedError(PermanentError):
    """Backend answered with a non-2xx status other than 429/5xx."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


# Local media errors
class MediaStoreError(ServiceError):
    """Base exception for local media store errors."""

    pass


class ArtifactNotFoundError(MediaStoreError):
    """Artifact referenced by a record no longer exists."""

    pass


class ArtifactUnreadableError(MediaStoreError):
    """Artifact exists but is empty, corrupted, or not an image."""

    pass
