from datetime import date, datetime

import pytest

from school_attendance.attendance import aggregator
from school_attendance.core.enums import AttendanceStatus, Direction, Method
from school_attendance.core.exceptions import ValidationError


def test_summary_counts_statuses(make_event):
    events = [
        make_event(datetime(2025, 3, 3, 7, 30)),
        make_event(datetime(2025, 3, 4, 8, 10), status=AttendanceStatus.LATE, late_minutes=10),
        make_event(datetime(2025, 3, 5, 7, 0), status=AttendanceStatus.ABSENT, method=Method.MANUAL),
        make_event(datetime(2025, 3, 3, 15, 0), direction=Direction.CHECK_OUT),
    ]

    s = aggregator.summary(events)

    assert (s.total, s.present, s.late, s.absent, s.excused) == (4, 2, 1, 1, 0)
    assert s.percentage == 50
    assert s.check_ins == 3
    assert s.check_outs == 1
    assert s.by_method == {"qr": 3, "manual": 1}


def test_summary_of_nothing_is_zero():
    s = aggregator.summary([])

    assert s.total == 0
    assert s.percentage == 0


def test_streak_stops_at_first_non_present_day():
    days = {
        date(2025, 3, 3): AttendanceStatus.PRESENT,
        date(2025, 3, 4): AttendanceStatus.PRESENT,
        date(2025, 3, 5): AttendanceStatus.PRESENT,
        date(2025, 3, 2): AttendanceStatus.LATE,
        date(2025, 3, 1): AttendanceStatus.PRESENT,
    }

    assert aggregator.streak(days, date(2025, 3, 5)) == 3
    assert aggregator.streak(days, date(2025, 3, 2)) == 0
    assert aggregator.streak({}, date(2025, 3, 5)) == 0


def test_streak_ignores_future_days():
    days = {date(2025, 3, 6): AttendanceStatus.ABSENT, date(2025, 3, 5): AttendanceStatus.PRESENT}

    assert aggregator.streak(days, date(2025, 3, 5)) == 1


def test_trends_are_oldest_first_and_include_empty_days(make_event):
    events = [make_event(datetime(2025, 3, 5, 7, 30)), make_event(datetime(2025, 3, 3, 7, 30))]

    buckets = aggregator.trends(events, 3, today=date(2025, 3, 5))

    assert [b.day for b in buckets] == [date(2025, 3, 3), date(2025, 3, 4), date(2025, 3, 5)]
    assert [b.total for b in buckets] == [1, 0, 1]
    assert buckets[1].percentage == 0

    with pytest.raises(ValidationError):
        aggregator.trends(events, 0, today=date(2025, 3, 5))


def test_most_used_method_breaks_ties_by_first_seen(make_event):
    events = [
        make_event(datetime(2025, 3, 3, 7, 0), method=Method.OTC),
        make_event(datetime(2025, 3, 4, 7, 0), method=Method.QR),
        make_event(datetime(2025, 3, 5, 7, 0), method=Method.QR),
        make_event(datetime(2025, 3, 6, 7, 0), method=Method.OTC),
    ]

    usage = aggregator.most_used_method(events)

    assert usage.method is Method.OTC
    assert usage.count == 2
    assert usage.percentage == 50
    assert aggregator.most_used_method([]).method is None


def test_daily_status_prefers_the_check_in(make_event):
    events = [
        make_event(datetime(2025, 3, 3, 15, 0), direction=Direction.CHECK_OUT),
        make_event(datetime(2025, 3, 3, 8, 5), status=AttendanceStatus.LATE),
    ]

    assert aggregator.daily_status(events) == {date(2025, 3, 3): AttendanceStatus.LATE}


def test_report_and_helpers(make_event):
    now = datetime(2025, 3, 20, 12, 0)
    events = [
        make_event(datetime(2025, 3, 20, 7, 30)),
        make_event(datetime(2025, 3, 19, 8, 30)),
        make_event(datetime(2025, 2, 27, 7, 0)),
    ]

    assert aggregator.report(events, "today", now=now).summary.total == 1
    assert aggregator.report(events, "week", now=now).summary.total == 2
    assert aggregator.report(events, "month", now=now).summary.total == 2
    assert aggregator.report(events, "all", now=now).summary.total == 3
    with pytest.raises(ValidationError):
        aggregator.report(events, "decade", now=now)

    assert aggregator.average_check_in_time(events[:2]) == "08:00"
    assert aggregator.average_check_in_time([]) == "00:00"
    assert aggregator.rating_for_percentage(90) == "excellent"
    assert aggregator.rating_for_percentage(75) == "good"
    assert aggregator.rating_for_percentage(60) == "average"
    assert aggregator.rating_for_percentage(59.9) == "poor"
