from datetime import datetime

from school_attendance.attendance.factory import AttendanceStrategyFactory
from school_attendance.attendance.strategies.late_strategy import LateStrategy
from school_attendance.attendance.strategies.present_strategy import PresentStrategy
from school_attendance.core.enums import AttendanceStatus, Direction


def test_factory_checkin_at_school_start_is_present(schedule):
    now = datetime(2025, 3, 3, 7, 45, 0)

    strategy = AttendanceStrategyFactory().for_checkin(now=now, schedule=schedule)

    assert isinstance(strategy, PresentStrategy)


def test_factory_checkin_after_school_start_is_late(schedule):
    now = datetime(2025, 3, 3, 7, 45, 1)

    strategy = AttendanceStrategyFactory().for_checkin(now=now, schedule=schedule)

    assert isinstance(strategy, LateStrategy)


def test_decide_checkin_reports_whole_late_minutes(schedule):
    decision = AttendanceStrategyFactory().decide(
        Direction.CHECK_IN, now=datetime(2025, 3, 3, 7, 50, 59), schedule=schedule
    )

    assert decision.status is AttendanceStatus.LATE
    assert decision.late_minutes == 5
    assert decision.note == "Late by 5 min"


def test_decide_checkout_is_always_present(schedule):
    decision = AttendanceStrategyFactory().decide(
        Direction.CHECK_OUT, now=datetime(2025, 3, 3, 19, 0), schedule=schedule
    )

    assert decision.status is AttendanceStatus.PRESENT
    assert decision.late_minutes == 0
