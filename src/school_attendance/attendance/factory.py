from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from ..core.enums import Direction
from .model import AttendanceSchedule
from .strategies.base import AttendanceStrategy, StatusDecision
from .strategies.late_strategy import LateStrategy
from .strategies.present_strategy import PresentStrategy
from .window import TimeWindowValidator


@dataclass
class AttendanceStrategyFactory:
    """Factory Pattern: choose appropriate strategy based on rules."""

    validator: TimeWindowValidator = field(default_factory=TimeWindowValidator)

    def for_checkin(self, *, now: datetime, schedule: AttendanceSchedule) -> AttendanceStrategy:
        if self.validator.is_late(now, schedule.school_start):
            return LateStrategy()
        return PresentStrategy()

    def for_checkout(self, *, now: datetime, schedule: AttendanceSchedule) -> AttendanceStrategy:
        return PresentStrategy()

    def decide(self, direction: Direction, *, now: datetime, schedule: AttendanceSchedule) -> StatusDecision:
        if direction is Direction.CHECK_IN:
            late = self.validator.late_minutes(now, schedule.school_start)
            return self.for_checkin(now=now, schedule=schedule).decide_checkin(now=now, schedule=schedule, late_minutes=late)
        if direction is Direction.CHECK_OUT:
            return self.for_checkout(now=now, schedule=schedule).decide_checkout(now=now, schedule=schedule)
        raise ValueError(f"Unknown direction: {direction!r}")
