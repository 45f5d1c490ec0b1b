from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional, Sequence

from ..api.client import ApiClient
from ..common.datetime_utils import format_timestamp, parse_timestamp
from ..core.enums import AttendanceStatus, Direction, Method
from ..core.exceptions import ServerError, ValidationError
from .model import AttendanceEvent, ResolvedEvent
from .repository import AttendanceRepository


def event_from_payload(data: Any, *, fallback: Optional[dict] = None) -> AttendanceEvent:
    """Map a backend attendance JSON object into the domain entity.

    ``fallback`` fills fields the server omitted (client-computed status etc).
    """

    if isinstance(data, dict) and isinstance(data.get("attendance"), dict):
        data = data["attendance"]
    if not isinstance(data, dict):
        raise ServerError("Malformed attendance record from server.")
    merged = dict(fallback or {})
    merged.update({k: v for k, v in data.items() if v is not None})
    try:
        return AttendanceEvent(
            id=str(merged["id"]),
            student_id=str(merged["studentId"]),
            direction=Direction(merged["direction"]),
            method=Method(merged["method"]),
            timestamp=parse_timestamp(merged["timestamp"]),
            status=AttendanceStatus(merged["status"]),
            late_minutes=max(0, int(merged.get("lateMinutes") or 0)),
            notes=merged.get("notes"),
        )
    except (KeyError, ValueError, ValidationError) as exc:
        raise ServerError(f"Malformed attendance record from server: {exc}")


def event_request(
    *,
    student_id: str,
    direction: Direction,
    method: Method,
    timestamp: datetime,
    notes: Optional[str] = None,
) -> dict:
    body = {
        "studentId": student_id,
        "direction": direction.value,
        "method": method.value,
        "timestamp": format_timestamp(timestamp),
    }
    if notes:
        body["notes"] = notes
    return body


class HttpAttendanceRepository(AttendanceRepository):
    def __init__(self, api: ApiClient):
        self._api = api

    async def create_event(
        self,
        *,
        student_id: str,
        direction: Direction,
        method: Method,
        timestamp: datetime,
        status: AttendanceStatus,
        late_minutes: int,
        notes: Optional[str] = None,
        extra: Optional[dict] = None,
    ) -> AttendanceEvent:
        body = event_request(student_id=student_id, direction=direction, method=method, timestamp=timestamp, notes=notes)
        if method is Method.MANUAL:
            body["status"] = status.value
        body.update(extra or {})
        data = await self._api.post("/attendance/", body)
        return event_from_payload(
            data,
            fallback={**body, "status": status.value, "lateMinutes": late_minutes},
        )

    async def list_events(
        self,
        *,
        student_id: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Sequence[AttendanceEvent]:
        params: dict[str, str] = {}
        if student_id:
            params["studentId"] = student_id
        if start_date:
            params["startDate"] = start_date.isoformat()
        if end_date:
            params["endDate"] = end_date.isoformat()
        data = await self._api.get("/attendance/", params=params or None)
        rows = data.get("results", []) if isinstance(data, dict) else (data or [])
        return [event_from_payload(r) for r in rows]


def fallback_from(resolved: Optional[ResolvedEvent]) -> dict:
    """Client-side view of a record, used where the server reply omits fields."""
    if resolved is None:
        return {}
    return {
        "studentId": resolved.student_id,
        "direction": resolved.direction.value,
        "method": resolved.method.value,
        "timestamp": format_timestamp(resolved.timestamp),
        "status": resolved.status.value,
        "lateMinutes": resolved.late_minutes,
        "notes": resolved.notes,
    }
