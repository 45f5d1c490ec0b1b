from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Account roles that can act on a guardian link request."""

    GUARDIAN = "guardian"
    TEACHER = "teacher"


class Direction(str, Enum):
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"


class Method(str, Enum):
    """Capture method that produced an attendance event."""

    QR = "qr"
    FINGERPRINT = "fingerprint"
    FACE = "face"
    OTC = "otc"
    MANUAL = "manual"


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    LATE = "late"
    ABSENT = "absent"
    EXCUSED = "excused"


class BiometricType(str, Enum):
    FINGERPRINT = "fingerprint"
    FACE = "face"

    @property
    def method(self) -> Method:
        if self is BiometricType.FINGERPRINT:
            return Method.FINGERPRINT
        return Method.FACE


class ConsentState(str, Enum):
    """Lifecycle of a guardian link request."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"
    FINALIZED = "finalized"

    @property
    def is_terminal(self) -> bool:
        return self in {ConsentState.REJECTED, ConsentState.EXPIRED, ConsentState.FINALIZED}


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    AUTHENTICATION_REQUIRED = "authentication_required"
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    EXPIRED = "expired"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    NETWORK = "network"
    SERVER = "server"
    CANCELLED = "cancelled"
    AUTHENTICATION_FAILED = "authentication_failed"
