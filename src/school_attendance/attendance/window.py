from __future__ import annotations

from datetime import datetime, time

from ..common.datetime_utils import format_time_of_day
from ..core.enums import Direction
from .model import AttendanceSchedule, WindowDecision

_LABELS = {
    Direction.CHECK_IN: "Check-in",
    Direction.CHECK_OUT: "Check-out",
}


class TimeWindowValidator:
    """Pure checks against the school's attendance windows. Both edges are inclusive."""

    def validate(self, direction: Direction, now: datetime, schedule: AttendanceSchedule) -> WindowDecision:
        start, end = schedule.window_for(direction)
        current = now.time()
        label = _LABELS[direction]

        if current < start:
            return WindowDecision(allowed=False, reason=f"{label} not allowed before {format_time_of_day(start)}")
        if current > end:
            return WindowDecision(allowed=False, reason=f"{label} not allowed after {format_time_of_day(end)}")
        return WindowDecision(allowed=True)

    @staticmethod
    def _start_instant(check_in_time: datetime, school_start: time) -> datetime:
        return datetime.combine(check_in_time.date(), school_start)

    def is_late(self, check_in_time: datetime, school_start: time) -> bool:
        return check_in_time > self._start_instant(check_in_time, school_start)

    def late_minutes(self, check_in_time: datetime, school_start: time) -> int:
        if not self.is_late(check_in_time, school_start):
            return 0
        diff = check_in_time - self._start_instant(check_in_time, school_start)
        return int(diff.total_seconds() // 60)
