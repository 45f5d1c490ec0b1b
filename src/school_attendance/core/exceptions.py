from __future__ import annotations

from typing import Optional

from .enums import ErrorKind


class DomainError(Exception):
    """Base exception for business rule violations.

    Every subclass maps to one ErrorKind so callers can pick between
    "fix the input" and "retry later" messaging without inspecting types.
    """

    kind: ErrorKind = ErrorKind.VALIDATION
    default_message = "Something went wrong."

    def __init__(self, message: Optional[str] = None, *, status_code: Optional[int] = None):
        self.message = message or self.default_message
        self.status_code = status_code
        super().__init__(self.message)

    @property
    def is_retryable(self) -> bool:
        return self.kind in {ErrorKind.NETWORK, ErrorKind.SERVER}


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""

    kind = ErrorKind.VALIDATION
    default_message = "Invalid request."


class WindowClosed(ValidationError):
    """Attendance attempted outside the configured time window."""

    default_message = "Attendance is not allowed at this time."


class AuthenticationRequired(DomainError):
    kind = ErrorKind.AUTHENTICATION_REQUIRED
    default_message = "Session expired. Please log in again."


class PermissionDenied(DomainError):
    """Raised when an actor lacks permission for an action."""

    kind = ErrorKind.PERMISSION_DENIED
    default_message = "You do not have permission for this action."


class NotFound(DomainError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Resource not found."


class Conflict(DomainError):
    kind = ErrorKind.CONFLICT
    default_message = "The request conflicts with the current state."


class DuplicateRecord(Conflict):
    default_message = "Attendance already recorded."


class Expired(DomainError):
    kind = ErrorKind.EXPIRED
    default_message = "This item has expired."


class TooManyAttempts(DomainError):
    """The code is no longer usable; a new one has to be generated."""

    kind = ErrorKind.TOO_MANY_ATTEMPTS
    default_message = "Too many attempts. Generate a new code."


class NetworkError(DomainError):
    kind = ErrorKind.NETWORK
    default_message = "Network error. Check your connection."


class ServerError(DomainError):
    kind = ErrorKind.SERVER
    default_message = "Server error. Please try again later."


class Cancelled(DomainError):
    """User dismissed a platform prompt."""

    kind = ErrorKind.CANCELLED
    default_message = "Authentication was cancelled."


class AuthenticationFailed(DomainError):
    """Local biometric challenge did not succeed."""

    kind = ErrorKind.AUTHENTICATION_FAILED
    default_message = "Biometric authentication failed."


ERRORS_BY_KIND: dict[ErrorKind, type[DomainError]] = {
    ErrorKind.VALIDATION: ValidationError,
    ErrorKind.AUTHENTICATION_REQUIRED: AuthenticationRequired,
    ErrorKind.PERMISSION_DENIED: PermissionDenied,
    ErrorKind.NOT_FOUND: NotFound,
    ErrorKind.CONFLICT: Conflict,
    ErrorKind.EXPIRED: Expired,
    ErrorKind.TOO_MANY_ATTEMPTS: TooManyAttempts,
    ErrorKind.NETWORK: NetworkError,
    ErrorKind.SERVER: ServerError,
    ErrorKind.CANCELLED: Cancelled,
    ErrorKind.AUTHENTICATION_FAILED: AuthenticationFailed,
}
