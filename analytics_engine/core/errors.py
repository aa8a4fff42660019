"""
Error taxonomy for the analytics core.

Every error carries an HTTP status and a stable machine-readable code so the
exception handlers in main.py can render one envelope shape for all of them.
"""
from typing import Any, Optional


class AnalyticsError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "An error occurred"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class AuthenticationFailed(AnalyticsError):
    """
    Missing, unknown, expired or inactive API key.
    The message is fixed so callers cannot tell the causes apart.
    """

    status_code = 401
    code = "AUTHENTICATION_FAILED"
    default_message = "The provided API key is missing, invalid or expired."

    def __init__(self):
        super().__init__()


class ValidationFailed(AnalyticsError):
    status_code = 400
    code = "VALIDATION_FAILED"
    default_message = "Request validation failed"


class NotFound(AnalyticsError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class StorageUnavailable(AnalyticsError):
    """Event store (or another required backend) could not be reached."""

    status_code = 503
    code = "STORAGE_UNAVAILABLE"
    default_message = "Service temporarily unavailable"


class InternalError(AnalyticsError):
    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "An error occurred"
