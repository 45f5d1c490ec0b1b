from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..common.datetime_utils import format_timestamp, parse_timestamp
from ..core.enums import BiometricType


@dataclass(frozen=True)
class BiometricEnrollment:
    """One row per (student, type). Removing it is terminal until re-enrolled."""

    student_id: str
    type: BiometricType
    enrolled_at: datetime
    last_verified_at: Optional[datetime] = None

    def to_cache(self) -> dict[str, Any]:
        return {
            "studentId": self.student_id,
            "type": self.type.value,
            "enrolledAt": format_timestamp(self.enrolled_at),
            "lastVerifiedAt": format_timestamp(self.last_verified_at) if self.last_verified_at else None,
        }

    @classmethod
    def from_cache(cls, data: dict[str, Any]) -> "BiometricEnrollment":
        return cls(
            student_id=str(data["studentId"]),
            type=BiometricType(data["type"]),
            enrolled_at=parse_timestamp(data["enrolledAt"]),
            last_verified_at=parse_timestamp(data["lastVerifiedAt"]) if data.get("lastVerifiedAt") else None,
        )


@dataclass(frozen=True)
class SupportInfo:
    has_hardware: bool
    is_enrolled_on_device: bool
    supported_types: tuple[BiometricType, ...] = field(default_factory=tuple)

    @property
    def is_supported(self) -> bool:
        return self.has_hardware and self.is_enrolled_on_device

    def supports(self, biometric_type: BiometricType) -> bool:
        return self.is_supported and biometric_type in self.supported_types


@dataclass(frozen=True)
class LocalAuthResult:
    success: bool
    error: Optional[str] = None
    cancelled: bool = False


@dataclass(frozen=True)
class MatchResult:
    matched: bool
    confidence: Optional[float] = None
    message: Optional[str] = None
