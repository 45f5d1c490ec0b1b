from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from ..common.datetime_utils import format_timestamp, parse_timestamp


@dataclass(frozen=True)
class ParsedPayload:
    tag: str
    student_id: str
    issued_at_token: int


@dataclass(frozen=True)
class QRToken:
    """Scannable student token. Revocation is terminal."""

    payload: str
    student_id: str
    issued_at: datetime
    expires_at: Optional[datetime] = None
    single_use: bool = False
    revoked: bool = False

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    def is_usable(self, now: datetime) -> bool:
        return not self.revoked and not self.is_expired(now)

    def to_cache(self) -> dict[str, Any]:
        return {
            "payload": self.payload,
            "studentId": self.student_id,
            "issuedAt": format_timestamp(self.issued_at),
            "expiresAt": format_timestamp(self.expires_at) if self.expires_at else None,
            "singleUse": self.single_use,
            "revoked": self.revoked,
        }

    @classmethod
    def from_cache(cls, data: dict[str, Any]) -> "QRToken":
        return cls(
            payload=str(data["payload"]),
            student_id=str(data["studentId"]),
            issued_at=parse_timestamp(data["issuedAt"]),
            expires_at=parse_timestamp(data["expiresAt"]) if data.get("expiresAt") else None,
            single_use=bool(data.get("singleUse", False)),
            revoked=bool(data.get("revoked", False)),
        )
