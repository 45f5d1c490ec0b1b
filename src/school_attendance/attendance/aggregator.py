"""Derived attendance statistics.

Every function here is a pure transformation of an event list (plus "today"
where a calendar anchor is needed); nothing is cached between calls.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, Mapping, Optional, Sequence

from ..core.constants import DEFAULT_TREND_DAYS
from ..core.enums import AttendanceStatus, Direction, Method
from ..core.exceptions import ValidationError
from .model import AttendanceEvent


@dataclass(frozen=True)
class AttendanceSummary:
    total: int
    present: int
    absent: int
    late: int
    excused: int
    percentage: int
    check_ins: int = 0
    check_outs: int = 0
    by_method: dict = field(default_factory=dict)


@dataclass(frozen=True)
class DayBucket:
    day: date
    total: int
    present: int
    late: int
    absent: int
    excused: int
    percentage: int


@dataclass(frozen=True)
class MethodUsage:
    method: Optional[Method]
    count: int
    percentage: int


@dataclass(frozen=True)
class AttendanceReport:
    period: str
    start: datetime
    end: datetime
    summary: AttendanceSummary
    daily: dict
    most_used_method: MethodUsage
    events: list


def percentage(part: int, total: int) -> int:
    if total == 0:
        return 0
    return round(part / total * 100)


def rating_for_percentage(value: float) -> str:
    if value >= 90:
        return "excellent"
    if value >= 75:
        return "good"
    if value >= 60:
        return "average"
    return "poor"


def summary(events: Sequence[AttendanceEvent]) -> AttendanceSummary:
    statuses = Counter(e.status for e in events)
    directions = Counter(e.direction for e in events)
    methods = Counter(e.method.value for e in events)
    total = len(events)
    present = statuses[AttendanceStatus.PRESENT]
    return AttendanceSummary(
        total=total,
        present=present,
        absent=statuses[AttendanceStatus.ABSENT],
        late=statuses[AttendanceStatus.LATE],
        excused=statuses[AttendanceStatus.EXCUSED],
        percentage=percentage(present, total),
        check_ins=directions[Direction.CHECK_IN],
        check_outs=directions[Direction.CHECK_OUT],
        by_method=dict(methods),
    )


def group_by_day(events: Iterable[AttendanceEvent]) -> dict[date, list[AttendanceEvent]]:
    grouped: dict[date, list[AttendanceEvent]] = defaultdict(list)
    for e in events:
        grouped[e.day].append(e)
    return dict(grouped)


def daily_status(events: Iterable[AttendanceEvent]) -> dict[date, AttendanceStatus]:
    """One status per day, taken from the check-in (or the first event if none)."""
    result: dict[date, AttendanceStatus] = {}
    for day, items in group_by_day(events).items():
        ordered = sorted(items, key=lambda e: e.timestamp)
        check_in = next((e for e in ordered if e.direction is Direction.CHECK_IN), None)
        result[day] = (check_in or ordered[0]).status
    return result


def streak(events_by_day: Mapping[date, AttendanceStatus], today: date) -> int:
    """Consecutive present days counting back from ``today``.

    Days without a record (weekends, holidays) are skipped; the first recorded
    day that is not present ends the streak. Future days are ignored.
    """
    count = 0
    for day in sorted((d for d in events_by_day if d <= today), reverse=True):
        if events_by_day[day] is not AttendanceStatus.PRESENT:
            break
        count += 1
    return count


def trends(events: Sequence[AttendanceEvent], days: int = DEFAULT_TREND_DAYS, *, today: date) -> list[DayBucket]:
    """Per-day buckets for the last ``days`` days ending today, oldest first."""
    if days <= 0:
        raise ValidationError("days must be greater than zero")
    grouped = group_by_day(events)
    buckets: list[DayBucket] = []
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        s = summary(grouped.get(day, []))
        buckets.append(
            DayBucket(
                day=day,
                total=s.total,
                present=s.present,
                late=s.late,
                absent=s.absent,
                excused=s.excused,
                percentage=s.percentage,
            )
        )
    return buckets


def most_used_method(events: Sequence[AttendanceEvent]) -> MethodUsage:
    """Most frequent capture method; ties go to the method seen first."""
    counts: dict[Method, int] = {}
    for e in events:
        counts[e.method] = counts.get(e.method, 0) + 1

    best: Optional[Method] = None
    best_count = 0
    for method, count in counts.items():
        if count > best_count:
            best, best_count = method, count
    return MethodUsage(method=best, count=best_count, percentage=percentage(best_count, len(events)))


def filter_by_range(events: Iterable[AttendanceEvent], start: datetime, end: datetime) -> list[AttendanceEvent]:
    return [e for e in events if start <= e.timestamp <= end]


def average_check_in_time(events: Iterable[AttendanceEvent]) -> str:
    minutes = [e.timestamp.hour * 60 + e.timestamp.minute for e in events if e.direction is Direction.CHECK_IN]
    if not minutes:
        return "00:00"
    avg = sum(minutes) // len(minutes)
    return f"{avg // 60:02d}:{avg % 60:02d}"


def _period_start(period: str, now: datetime) -> datetime:
    if period == "today":
        return datetime.combine(now.date(), datetime.min.time())
    if period == "week":
        return now - timedelta(days=7)
    if period == "month":
        return datetime(now.year, now.month, 1)
    if period == "all":
        return datetime.min
    raise ValidationError(f"Unknown report period: {period!r}")


def report(events: Sequence[AttendanceEvent], period: str = "week", *, now: datetime) -> AttendanceReport:
    start = _period_start(period, now)
    selected = filter_by_range(events, start, now)
    return AttendanceReport(
        period=period,
        start=start,
        end=now,
        summary=summary(selected),
        daily=group_by_day(selected),
        most_used_method=most_used_method(selected),
        events=selected,
    )
