from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from ..api.client import ApiClient
from ..api.errors import kind_from_code
from ..attendance.http_attendance_repository import event_from_payload, fallback_from
from ..attendance.model import AttendanceEvent, ResolvedEvent
from ..common.datetime_utils import format_timestamp, parse_timestamp
from ..common.validators import ValidationResult
from ..core.enums import Direction, ErrorKind, Method
from ..core.exceptions import ServerError
from .model import OneTimeCode
from .repository import OTCRepository


class HttpOTCRepository(OTCRepository):
    def __init__(self, api: ApiClient):
        self._api = api

    async def generate(self, *, student_id: str, purpose: str, expiry_minutes: int, now: datetime) -> OneTimeCode:
        data = await self._api.post(
            "/otc/generate/",
            {"studentId": student_id, "purpose": purpose, "expiryMinutes": expiry_minutes},
        )
        otc = data.get("otc", data) if isinstance(data, dict) else None
        if not isinstance(otc, dict) or not otc.get("code"):
            raise ServerError("Malformed one-time code from server.")
        generated_at = parse_timestamp(otc["generatedAt"]) if otc.get("generatedAt") else now
        expires_at = (
            parse_timestamp(otc["expiresAt"]) if otc.get("expiresAt") else generated_at + timedelta(minutes=expiry_minutes)
        )
        return OneTimeCode(
            code=str(otc["code"]),
            student_id=str(otc.get("studentId") or student_id),
            purpose=str(otc.get("purpose") or purpose),
            generated_at=generated_at,
            expires_at=expires_at,
        )

    async def validate(self, *, code: str, student_id: Optional[str], timestamp: datetime) -> ValidationResult:
        body = {"code": code, "timestamp": format_timestamp(timestamp)}
        if student_id:
            body["studentId"] = student_id
        data = await self._api.post("/otc/validate/", body) or {}
        resolved = str(data["studentId"]) if data.get("studentId") is not None else student_id
        if data.get("valid"):
            return ValidationResult.ok(resolved)
        reason = kind_from_code(data.get("reason")) or ErrorKind.VALIDATION
        return ValidationResult.fail(reason, str(data.get("message") or data.get("reason") or "Invalid code"), resolved)

    async def submit(
        self,
        *,
        code: str,
        direction: Direction,
        timestamp: datetime,
        resolved: Optional[ResolvedEvent] = None,
    ) -> AttendanceEvent:
        data = await self._api.post(
            "/otc/submit/",
            {"code": code, "direction": direction.value, "timestamp": format_timestamp(timestamp)},
        )
        return event_from_payload(
            data,
            fallback={
                **fallback_from(resolved),
                "direction": direction.value,
                "method": Method.OTC.value,
                "timestamp": format_timestamp(timestamp),
            },
        )
