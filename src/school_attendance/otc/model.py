from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..common.datetime_utils import format_timestamp, parse_timestamp


@dataclass(frozen=True)
class OneTimeCode:
    """Short-lived numeric code standing in for QR/biometric capture."""

    code: str
    student_id: str
    purpose: str
    generated_at: datetime
    expires_at: datetime
    consumed: bool = False

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def to_cache(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "studentId": self.student_id,
            "purpose": self.purpose,
            "generatedAt": format_timestamp(self.generated_at),
            "expiresAt": format_timestamp(self.expires_at),
            "consumed": self.consumed,
        }

    @classmethod
    def from_cache(cls, data: dict[str, Any]) -> "OneTimeCode":
        return cls(
            code=str(data["code"]),
            student_id=str(data["studentId"]),
            purpose=str(data["purpose"]),
            generated_at=parse_timestamp(data["generatedAt"]),
            expires_at=parse_timestamp(data["expiresAt"]),
            consumed=bool(data.get("consumed", False)),
        )
