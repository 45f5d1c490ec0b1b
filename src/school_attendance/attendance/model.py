from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Optional

from ..core.constants import (
    DEFAULT_CHECK_IN_END,
    DEFAULT_CHECK_IN_START,
    DEFAULT_CHECK_OUT_END,
    DEFAULT_CHECK_OUT_START,
    DEFAULT_SCHOOL_START,
)
from ..core.enums import AttendanceStatus, Direction, Method


@dataclass(frozen=True)
class AttendanceEvent:
    """Domain entity: one recorded check-in or check-out. Immutable once created."""

    id: str
    student_id: str
    direction: Direction
    method: Method
    timestamp: datetime
    status: AttendanceStatus
    late_minutes: int = 0
    notes: Optional[str] = None

    @property
    def day(self) -> date:
        return self.timestamp.date()

    @property
    def dedup_key(self) -> "DedupKey":
        return DedupKey(student_id=self.student_id, day=self.day, direction=self.direction)


@dataclass(frozen=True)
class DedupKey:
    student_id: str
    day: date
    direction: Direction


@dataclass(frozen=True)
class RawAttendanceEvent:
    """What a capture method hands to the ingestion gateway.

    ``status`` is only honoured for manual entries (teacher marks excused/absent).
    ``extra`` is forwarded to the backend unchanged (e.g. device info).
    """

    student_id: str
    direction: Any
    method: Any
    timestamp: Optional[Any] = None
    notes: Optional[str] = None
    status: Optional[AttendanceStatus] = None
    extra: dict = field(default_factory=dict)


@dataclass(frozen=True)
class AttendanceSchedule:
    """School attendance windows (time-of-day values)."""

    check_in_start: time = DEFAULT_CHECK_IN_START
    check_in_end: time = DEFAULT_CHECK_IN_END
    check_out_start: time = DEFAULT_CHECK_OUT_START
    check_out_end: time = DEFAULT_CHECK_OUT_END
    school_start: time = DEFAULT_SCHOOL_START

    def window_for(self, direction: Direction) -> tuple[time, time]:
        if direction is Direction.CHECK_IN:
            return self.check_in_start, self.check_in_end
        if direction is Direction.CHECK_OUT:
            return self.check_out_start, self.check_out_end
        raise ValueError(f"Unknown direction: {direction!r}")


@dataclass(frozen=True)
class WindowDecision:
    allowed: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class Admission:
    accepted: bool
    key: DedupKey


@dataclass(frozen=True)
class ResolvedEvent:
    """A raw event after window, dedup and status checks, ready for the backend."""

    student_id: str
    direction: Direction
    method: Method
    timestamp: datetime
    status: AttendanceStatus
    late_minutes: int = 0
    notes: Optional[str] = None
    extra: dict = field(default_factory=dict)

    @property
    def dedup_key(self) -> DedupKey:
        return DedupKey(student_id=self.student_id, day=self.timestamp.date(), direction=self.direction)
