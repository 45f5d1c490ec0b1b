from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Protocol, Union

from ..core.exceptions import ValidationError


class Clock(Protocol):
    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock:
    """Current local time.

    Note: Injected everywhere time matters so tests can pass a FixedClock.
    """

    def now(self) -> datetime:
        return datetime.now()


class FixedClock:
    """Manually driven clock for tests and previews."""

    def __init__(self, current: datetime):
        self._current = current

    def now(self) -> datetime:
        return self._current

    def set(self, value: datetime) -> None:
        self._current = value

    def advance(self, **kwargs) -> datetime:
        self._current = self._current + timedelta(**kwargs)
        return self._current


@dataclass(frozen=True)
class Remaining:
    ms: int
    seconds: int
    minutes: int
    is_expired: bool


def remaining(expires_at: datetime, now: datetime) -> Remaining:
    """Time left until ``expires_at``; expired exactly when ``now >= expires_at``."""
    delta_ms = int((expires_at - now).total_seconds() * 1000)
    ms = max(0, delta_ms)
    return Remaining(ms=ms, seconds=ms // 1000, minutes=ms // 60000, is_expired=now >= expires_at)


def parse_time_of_day(value: Union[str, time]) -> time:
    """Parse HH:MM (or HH:MM:SS) into a time-of-day."""
    if isinstance(value, time):
        return value
    v = (value or "").strip()
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(v, fmt).time()
        except ValueError:
            continue
    raise ValidationError(f"Invalid time of day: {value!r} (expected HH:MM)")


def parse_timestamp(value: Union[str, datetime]) -> datetime:
    """Parse an ISO-8601 timestamp from the backend into a naive local datetime."""
    if isinstance(value, datetime):
        dt = value
    else:
        v = (value or "").strip()
        if v.endswith("Z"):
            v = v[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(v)
        except ValueError:
            raise ValidationError(f"Invalid timestamp: {value!r}")
    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt


def format_timestamp(value: datetime) -> str:
    return value.isoformat(timespec="seconds")


def to_epoch_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.astimezone()
    return int(value.astimezone(timezone.utc).timestamp() * 1000)


def format_time_of_day(value: time) -> str:
    return value.strftime("%H:%M")
