from typing import Optional


class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass

class ValidationError(BaseServiceError):
    """Raised when an event or request is malformed. Nothing has been written."""
    pass

class AuditLogError(BaseServiceError):
    """Raised when an audit entry could not be persisted."""
    pass

class PlatformServiceError(BaseServiceError):
    """Base exception for platform adapter and client errors."""

    def __init__(self, message: str = "", platform: Optional[str] = None):
        super().__init__(message)
        self.platform = platform

class NotFoundError(PlatformServiceError):
    """Raised when a product or level does not exist on the platform."""
    pass

class AuthExpiredError(PlatformServiceError):
    """Raised when platform credentials are stale and must be refreshed."""
    pass

class RateLimitedError(PlatformServiceError):
    """Raised when the platform call budget is exhausted."""

    def __init__(self, message: str = "", platform: Optional[str] = None, retry_after: Optional[float] = None):
        super().__init__(message, platform)
        self.retry_after = retry_after

class ConflictError(PlatformServiceError):
    """Raised when the platform rejects a write due to a concurrent change."""
    pass

class PlatformTimeoutError(PlatformServiceError):
    """Raised when a platform call exceeds its timeout."""
    pass

class PlatformAPIError(PlatformServiceError):
    """Raised for any other failed platform API call."""

    def __init__(self, message: str = "", platform: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, platform)
        self.status_code = status_code


def status_code_for(error: BaseServiceError) -> int:
    """HTTP status a route should answer with when a service error escapes."""
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, RateLimitedError):
        return 429
    if isinstance(error, PlatformServiceError):
        return 502
    return 500
