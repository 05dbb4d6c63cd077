"""
Core module exports.
"""
from .enums import (
    PlatformName,
    EventMode,
    AuditAction,
    MappingMethod,
    ActivationChange,
    SiblingStatus,
    SyncStatus,
)

from .exceptions import (
    BaseServiceError,
    ValidationError,
    AuditLogError,
    PlatformServiceError,
    NotFoundError,
    AuthExpiredError,
    RateLimitedError,
    ConflictError,
    PlatformTimeoutError,
    PlatformAPIError,
    status_code_for,
)
