from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..core.enums import ErrorKind
from ..core.exceptions import ERRORS_BY_KIND, ValidationError


def require_non_empty(value: Optional[str], field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field_name} is required")
    return str(value).strip()


def require_positive(value: int, field_name: str) -> int:
    if int(value) <= 0:
        raise ValidationError(f"{field_name} must be greater than zero")
    return int(value)


def optional_text(value: Optional[str]) -> Optional[str]:
    return (value or "").strip() or None


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a non-consuming validity check (OTC or QR)."""

    valid: bool
    reason: Optional[ErrorKind] = None
    message: Optional[str] = None
    student_id: Optional[str] = None

    @classmethod
    def ok(cls, student_id: Optional[str] = None) -> "ValidationResult":
        return cls(valid=True, student_id=student_id)

    @classmethod
    def fail(cls, reason: ErrorKind, message: str, student_id: Optional[str] = None) -> "ValidationResult":
        return cls(valid=False, reason=reason, message=message, student_id=student_id)

    def raise_for_reason(self) -> None:
        """Turn a failed result into its typed error."""
        if self.valid:
            return
        raise ERRORS_BY_KIND[self.reason or ErrorKind.VALIDATION](self.message)
