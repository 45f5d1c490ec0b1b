from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from ..api.client import ApiClient
from ..api.errors import kind_from_code
from ..attendance.http_attendance_repository import event_from_payload, fallback_from
from ..attendance.model import AttendanceEvent, ResolvedEvent
from ..common.datetime_utils import format_timestamp, parse_timestamp
from ..common.validators import ValidationResult
from ..core.enums import Direction, ErrorKind, Method
from ..core.exceptions import NotFound, ServerError, ValidationError
from .model import QRToken
from .repository import QRRepository


def _token_from_payload(data: Any, *, defaults: Optional[dict] = None) -> QRToken:
    if isinstance(data, dict) and isinstance(data.get("qrCode"), dict):
        data = data["qrCode"]
    if not isinstance(data, dict):
        raise ServerError("Malformed QR token from server.")
    merged = dict(defaults or {})
    merged.update({k: v for k, v in data.items() if v is not None})
    try:
        return QRToken(
            payload=str(merged["payload"]),
            student_id=str(merged["studentId"]),
            issued_at=parse_timestamp(merged["issuedAt"]),
            expires_at=parse_timestamp(merged["expiresAt"]) if merged.get("expiresAt") else None,
            single_use=bool(merged.get("singleUse", False)),
            revoked=bool(merged.get("revoked", False)),
        )
    except (KeyError, ValueError, ValidationError) as exc:
        raise ServerError(f"Malformed QR token from server: {exc}")


class HttpQRRepository(QRRepository):
    def __init__(self, api: ApiClient):
        self._api = api

    async def generate(
        self,
        *,
        student_id: str,
        payload: str,
        issued_at: datetime,
        expires_at: Optional[datetime] = None,
        single_use: bool = False,
    ) -> QRToken:
        body: dict[str, Any] = {"studentId": student_id, "payload": payload, "singleUse": single_use}
        if expires_at is not None:
            body["expiresAt"] = format_timestamp(expires_at)
        data = await self._api.post("/qrcodes/generate/", body)
        return _token_from_payload(
            data,
            defaults={**body, "issuedAt": format_timestamp(issued_at)},
        )

    async def get_for_student(self, student_id: str) -> Optional[QRToken]:
        try:
            data = await self._api.get("/qrcodes/by_student/", params={"studentId": student_id})
        except NotFound:
            return None
        rows = data.get("results", data) if isinstance(data, dict) else data
        if isinstance(rows, list):
            active = [r for r in rows if not r.get("revoked")]
            if not active:
                return None
            rows = active[-1]
        return _token_from_payload(rows)

    async def validate(self, *, payload: str, timestamp: datetime) -> ValidationResult:
        data = await self._api.post("/qrcodes/validate/", {"payload": payload, "timestamp": format_timestamp(timestamp)}) or {}
        student_id = str(data["studentId"]) if data.get("studentId") is not None else None
        if data.get("valid"):
            return ValidationResult.ok(student_id)
        reason = kind_from_code(data.get("reason")) or ErrorKind.VALIDATION
        return ValidationResult.fail(reason, str(data.get("message") or data.get("reason") or "Invalid QR code"), student_id)

    async def scan(
        self,
        *,
        payload: str,
        direction: Direction,
        timestamp: datetime,
        resolved: Optional[ResolvedEvent] = None,
    ) -> AttendanceEvent:
        data = await self._api.post(
            "/qrcodes/scan/",
            {"payload": payload, "direction": direction.value, "timestamp": format_timestamp(timestamp)},
        )
        return event_from_payload(
            data,
            fallback={
                **fallback_from(resolved),
                "direction": direction.value,
                "method": Method.QR.value,
                "timestamp": format_timestamp(timestamp),
            },
        )

    async def revoke(self, *, student_id: str, reason: Optional[str] = None) -> None:
        body = {"studentId": student_id}
        if reason:
            body["reason"] = reason
        await self._api.post("/qrcodes/revoke/", body)
