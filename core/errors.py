"""
core/errors.py -- Error taxonomy shared by every layer.

Each class carries the HTTP status and machine-readable type it surfaces as,
so the API layer can render any of them through one exception handler without
a lookup table. Services and repositories raise these deliberately; nothing
above the repository boundary should ever see a raw storage driver exception.

Envelope produced by to_dict():
    {"error": "<message>", "type": "<TYPE>", "details": {...}}   # details optional

Layer rule: core/ is the kernel. No imports from api/, auth/, fleet/, storage/.
"""

from __future__ import annotations

from typing import Any, Optional


class BusTrackError(Exception):
    """Base class for every error this application raises on purpose."""

    status_code: int = 500
    error_type: str = "INTERNAL_ERROR"

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message, "type": self.error_type}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(BusTrackError):
    """Input failed a shape or range check. Always tagged with the offending field."""

    status_code = 422
    error_type = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[dict[str, Any]] = None) -> None:
        if details is None and field is not None:
            details = {field: message}
        super().__init__(message, field=field, details=details)


class ConflictError(BusTrackError):
    """A unique key (email, license plate) is already taken."""

    status_code = 409
    error_type = "CONFLICT"

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message, field=field, details={"field": field} if field else None)


class NotFoundError(BusTrackError):
    status_code = 404
    error_type = "NOT_FOUND"


class AuthenticationError(BusTrackError):
    """Missing or unusable credentials. Wording stays generic on purpose."""

    status_code = 401
    error_type = "UNAUTHORIZED"


class InvalidCredentialsError(AuthenticationError):
    error_type = "INVALID_CREDENTIALS"

    def __init__(self) -> None:
        super().__init__("Invalid email or password")


class TokenExpiredError(AuthenticationError):
    error_type = "TOKEN_EXPIRED"


class TokenInvalidError(AuthenticationError):
    error_type = "TOKEN_INVALID"


class AuthorizationError(BusTrackError):
    """Authenticated, but the role is not allowed to perform the operation."""

    status_code = 403
    error_type = "FORBIDDEN"


class RateLimitError(BusTrackError):
    """Too many requests from one client inside a rate-limit window.

    retry_after is the number of whole seconds until the window frees a slot.
    """

    status_code = 429
    error_type = "RATE_LIMIT_EXCEEDED"

    def __init__(self, message: str, retry_after: int) -> None:
        super().__init__(message, details={"retryAfter": retry_after})
        self.retry_after = retry_after


class StorageError(BusTrackError):
    """The document store is unreachable or failed.

    The message is always generic. The underlying driver exception is chained
    via __cause__ and logged at the repository boundary, never sent to clients.
    """

    status_code = 500
    error_type = "INTERNAL_ERROR"

    def __init__(self, operation: str = "") -> None:
        super().__init__("An unexpected error occurred.")
        self.operation = operation
