from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Optional, Sequence

from ..common.datetime_utils import Clock, SystemClock, parse_timestamp
from ..common.validators import optional_text, require_non_empty
from ..core.enums import AttendanceStatus, Direction, Method
from ..core.exceptions import Conflict, DuplicateRecord, ValidationError, WindowClosed
from ..notifications.emitter import ATTENDANCE_RECORDED, NotificationEmitter
from .factory import AttendanceStrategyFactory
from .guard import DedupGuard
from .model import AttendanceEvent, AttendanceSchedule, DedupKey, RawAttendanceEvent, ResolvedEvent
from .repository import AttendanceRepository
from .window import TimeWindowValidator

logger = logging.getLogger(__name__)

Submitter = Callable[[ResolvedEvent], Awaitable[AttendanceEvent]]

_MANUAL_OVERRIDES = {AttendanceStatus.ABSENT, AttendanceStatus.EXCUSED}


def _coerce(enum_cls, value: Any, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Valid {field_name} is required")


def validate_raw_event(raw: RawAttendanceEvent, *, now: datetime) -> tuple[str, Direction, Method, datetime]:
    """Resolve student, direction, method and timestamp from a raw event."""

    student_id = require_non_empty(raw.student_id, "Student ID")
    direction = _coerce(Direction, raw.direction, "attendance direction")
    method = _coerce(Method, raw.method, "attendance method")
    timestamp = parse_timestamp(raw.timestamp) if raw.timestamp is not None else now
    return student_id, direction, method, timestamp


class IngestionGateway:
    """Single entry point for every capture method.

    Order: resolve -> time window -> dedup guard -> status -> backend -> notify.
    Method managers (OTC, QR, biometric, manual) pass their own ``submit`` when
    the backend has a method-specific endpoint; the checks stay the same.
    """

    def __init__(
        self,
        attendance: AttendanceRepository,
        *,
        schedule: Optional[AttendanceSchedule] = None,
        validator: Optional[TimeWindowValidator] = None,
        guard: Optional[DedupGuard] = None,
        strategy_factory: Optional[AttendanceStrategyFactory] = None,
        notifier: Optional[NotificationEmitter] = None,
        clock: Optional[Clock] = None,
    ):
        self._attendance = attendance
        self._schedule = schedule or AttendanceSchedule()
        self._validator = validator or TimeWindowValidator()
        self._guard = guard or DedupGuard()
        self._factory = strategy_factory or AttendanceStrategyFactory(self._validator)
        self._notifier = notifier
        self._clock = clock or SystemClock()

    @property
    def schedule(self) -> AttendanceSchedule:
        return self._schedule

    @property
    def guard(self) -> DedupGuard:
        return self._guard

    def check_window(self, direction: Direction, now: Optional[datetime] = None) -> None:
        """Raise WindowClosed if ``direction`` is not accepted at ``now``."""
        decision = self._validator.validate(direction, now or self._clock.now(), self._schedule)
        if not decision.allowed:
            raise WindowClosed(decision.reason)

    def check_duplicate(self, student_id: str, direction: Direction, now: Optional[datetime] = None) -> None:
        """Raise DuplicateRecord if the guard already holds this record. Does not admit."""
        key = DedupKey(student_id=str(student_id).strip(), day=(now or self._clock.now()).date(), direction=direction)
        if key in self._guard:
            raise DuplicateRecord()

    def _resolve(self, raw: RawAttendanceEvent) -> ResolvedEvent:
        student_id, direction, method, timestamp = validate_raw_event(raw, now=self._clock.now())

        self.check_window(direction, timestamp)

        admission = self._guard.admit(student_id, timestamp.date(), direction)
        if not admission.accepted:
            raise DuplicateRecord()

        if raw.status is not None and method is Method.MANUAL and raw.status in _MANUAL_OVERRIDES:
            status, late_minutes, note = raw.status, 0, None
        else:
            decision = self._factory.decide(direction, now=timestamp, schedule=self._schedule)
            status, late_minutes, note = decision.status, decision.late_minutes, decision.note

        return ResolvedEvent(
            student_id=student_id,
            direction=direction,
            method=method,
            timestamp=timestamp,
            status=status,
            late_minutes=late_minutes,
            notes=optional_text(raw.notes) or note,
            extra=dict(raw.extra),
        )

    async def _create(self, resolved: ResolvedEvent) -> AttendanceEvent:
        return await self._attendance.create_event(
            student_id=resolved.student_id,
            direction=resolved.direction,
            method=resolved.method,
            timestamp=resolved.timestamp,
            status=resolved.status,
            late_minutes=resolved.late_minutes,
            notes=resolved.notes,
            extra=resolved.extra,
        )

    async def ingest(self, raw: RawAttendanceEvent, *, submit: Optional[Submitter] = None) -> AttendanceEvent:
        resolved = self._resolve(raw)
        key = resolved.dedup_key

        try:
            event = await (submit or self._create)(resolved)
        except Conflict as exc:
            # Backend already holds this record; keep the key admitted.
            logger.info("Backend reports %s already recorded for student %s", resolved.direction.value, resolved.student_id)
            raise DuplicateRecord(status_code=exc.status_code) from exc
        except BaseException:
            self._guard.release(key)
            raise

        logger.info(
            "Recorded %s for student %s via %s (%s)",
            event.direction.value,
            event.student_id,
            event.method.value,
            event.status.value,
        )
        if self._notifier is not None:
            await self._notifier.emit(ATTENDANCE_RECORDED, {"event": event})
        return event

    async def record_manual(
        self,
        student_id: str,
        direction: Direction,
        *,
        status: Optional[AttendanceStatus] = None,
        notes: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> AttendanceEvent:
        raw = RawAttendanceEvent(
            student_id=student_id,
            direction=direction,
            method=Method.MANUAL,
            timestamp=timestamp,
            notes=notes,
            status=status,
        )
        return await self.ingest(raw)

    async def load_history(
        self,
        *,
        student_id: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Sequence[AttendanceEvent]:
        """Fetch known events and seed the dedup guard with them."""
        events = await self._attendance.list_events(student_id=student_id, start_date=start_date, end_date=end_date)
        self._guard.seed(events)
        return events
