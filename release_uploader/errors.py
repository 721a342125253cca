"""Exception hierarchy for release uploads."""
from typing import Optional


class ReleaseUploaderError(Exception):
    """Base class for all release uploader errors."""


class ConfigurationError(ReleaseUploaderError):
    """A required option is missing or an option value is invalid."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class NetworkFailure(ReleaseUploaderError):
    """Non-2xx response or transport error from the remote service."""

    status_code: Optional[int] = None

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class TimeoutFailure(NetworkFailure):
    """Request did not finish within the configured duration."""

    def __init__(self, message: str, url: Optional[str] = None, timeout: Optional[float] = None):
        super().__init__(message, status_code=None, url=url)
        self.timeout = timeout


class ConflictFailure(NetworkFailure):
    """Remote rejected the request because the resource already exists (409)."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message, status_code=409, url=url)
