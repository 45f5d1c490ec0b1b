from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Protocol, Sequence

from ..core.enums import AttendanceStatus, Direction, Method
from .model import AttendanceEvent


class AttendanceRepository(Protocol):
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
        """Durably create the record. Raises Conflict if it already exists."""

        raise NotImplementedError

    async def list_events(
        self,
        *,
        student_id: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Sequence[AttendanceEvent]:
        raise NotImplementedError
