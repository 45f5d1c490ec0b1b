from __future__ import annotations

from datetime import datetime

from ...core.enums import AttendanceStatus
from ..model import AttendanceSchedule
from .base import AttendanceStrategy, StatusDecision


class LateStrategy(AttendanceStrategy):
    """Check-in after school start."""

    def decide_checkin(self, *, now: datetime, schedule: AttendanceSchedule, late_minutes: int) -> StatusDecision:
        return StatusDecision(
            status=AttendanceStatus.LATE,
            late_minutes=late_minutes,
            note=f"Late by {late_minutes} min",
        )

    def decide_checkout(self, *, now: datetime, schedule: AttendanceSchedule) -> StatusDecision:
        return StatusDecision(status=AttendanceStatus.PRESENT)
