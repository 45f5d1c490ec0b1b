from __future__ import annotations

import itertools
from dataclasses import replace
from datetime import date, datetime, time, timedelta
from typing import Optional

import pytest

from school_attendance.attendance.model import AttendanceEvent, AttendanceSchedule, ResolvedEvent
from school_attendance.attendance.service import IngestionGateway
from school_attendance.biometric.model import BiometricEnrollment, LocalAuthResult, MatchResult
from school_attendance.common.datetime_utils import FixedClock
from school_attendance.common.storage import InMemoryStore
from school_attendance.common.validators import ValidationResult
from school_attendance.consent.model import GuardianLinkRequest
from school_attendance.core.constants import CONSENT_WINDOW
from school_attendance.core.enums import AttendanceStatus, BiometricType, Direction, ErrorKind, Method
from school_attendance.core.exceptions import Conflict, NotFound
from school_attendance.notifications.emitter import NotificationEmitter
from school_attendance.otc.model import OneTimeCode
from school_attendance.qr.model import QRToken


def _event(resolved: ResolvedEvent, event_id: str) -> AttendanceEvent:
    return AttendanceEvent(
        id=event_id,
        student_id=resolved.student_id,
        direction=resolved.direction,
        method=resolved.method,
        timestamp=resolved.timestamp,
        status=resolved.status,
        late_minutes=resolved.late_minutes,
        notes=resolved.notes,
    )


class InMemoryAttendance:
    """Backend stand-in that enforces one record per (student, day, direction)."""

    def __init__(self):
        self.events: list[AttendanceEvent] = []
        self.fail_with: Optional[Exception] = None
        self._ids = itertools.count(1)

    def _check_unique(self, student_id: str, day: date, direction: Direction) -> None:
        for e in self.events:
            if e.student_id == student_id and e.day == day and e.direction is direction:
                raise Conflict("Attendance already recorded.", status_code=409)

    def add(self, resolved: ResolvedEvent) -> AttendanceEvent:
        if self.fail_with is not None:
            raise self.fail_with
        self._check_unique(resolved.student_id, resolved.timestamp.date(), resolved.direction)
        event = _event(resolved, f"att-{next(self._ids)}")
        self.events.append(event)
        return event

    async def create_event(self, *, student_id, direction, method, timestamp, status, late_minutes, notes=None, extra=None):
        return self.add(
            ResolvedEvent(
                student_id=student_id,
                direction=direction,
                method=method,
                timestamp=timestamp,
                status=status,
                late_minutes=late_minutes,
                notes=notes,
            )
        )

    async def list_events(self, *, student_id=None, start_date=None, end_date=None):
        items = [e for e in self.events if student_id is None or e.student_id == student_id]
        if start_date:
            items = [e for e in items if e.day >= start_date]
        if end_date:
            items = [e for e in items if e.day <= end_date]
        return items


class InMemoryOTC:
    def __init__(self, attendance: InMemoryAttendance, code: str = "123456"):
        self.attendance = attendance
        self.next_code = code
        self.codes: dict[str, OneTimeCode] = {}
        self.validate_calls = 0

    async def generate(self, *, student_id, purpose, expiry_minutes, now):
        otc = OneTimeCode(
            code=self.next_code,
            student_id=student_id,
            purpose=purpose,
            generated_at=now,
            expires_at=now + timedelta(minutes=expiry_minutes),
        )
        self.codes[otc.code] = otc
        return otc

    async def validate(self, *, code, student_id, timestamp):
        self.validate_calls += 1
        otc = self.codes.get(code)
        if otc is None or (student_id and otc.student_id != student_id):
            return ValidationResult.fail(ErrorKind.NOT_FOUND, "Invalid code", student_id)
        if otc.consumed:
            return ValidationResult.fail(ErrorKind.CONFLICT, "Code has already been used", otc.student_id)
        if otc.is_expired(timestamp):
            return ValidationResult.fail(ErrorKind.EXPIRED, "Code has expired", otc.student_id)
        return ValidationResult.ok(otc.student_id)

    async def submit(self, *, code, direction, timestamp, resolved=None):
        event = self.attendance.add(resolved)
        self.codes[code] = replace(self.codes[code], consumed=True)
        return event


class InMemoryQR:
    def __init__(self, attendance: InMemoryAttendance):
        self.attendance = attendance
        self.tokens: dict[str, QRToken] = {}
        self.used: set[str] = set()
        self.revocations: list[tuple[str, Optional[str]]] = []
        self.validate_calls = 0

    async def generate(self, *, student_id, payload, issued_at, expires_at, single_use):
        token = QRToken(payload=payload, student_id=student_id, issued_at=issued_at, expires_at=expires_at, single_use=single_use)
        self.tokens[payload] = token
        return token

    async def get_for_student(self, student_id):
        active = [t for t in self.tokens.values() if t.student_id == student_id and not t.revoked]
        return active[-1] if active else None

    async def validate(self, *, payload, timestamp):
        self.validate_calls += 1
        token = self.tokens.get(payload)
        if token is None:
            return ValidationResult.fail(ErrorKind.NOT_FOUND, "Unknown QR code")
        if token.revoked:
            return ValidationResult.fail(ErrorKind.EXPIRED, "QR code has been revoked", token.student_id)
        if token.is_expired(timestamp):
            return ValidationResult.fail(ErrorKind.EXPIRED, "QR code has expired", token.student_id)
        if token.single_use and payload in self.used:
            return ValidationResult.fail(ErrorKind.CONFLICT, "QR code has already been used", token.student_id)
        return ValidationResult.ok(token.student_id)

    async def scan(self, *, payload, direction, timestamp, resolved=None):
        event = self.attendance.add(resolved)
        self.used.add(payload)
        return event

    async def revoke(self, *, student_id, reason=None):
        self.revocations.append((student_id, reason))
        for payload, token in list(self.tokens.items()):
            if token.student_id == student_id:
                self.tokens[payload] = replace(token, revoked=True)


class InMemoryBiometrics:
    def __init__(self):
        self.enrollments: dict[tuple[str, BiometricType], BiometricEnrollment] = {}
        self.match = MatchResult(matched=True, confidence=0.98)
        self.calls: list[str] = []

    async def setup(self, *, student_id, type, enrolled_at, device_info=None, sample=None):
        self.calls.append("setup")
        enrollment = BiometricEnrollment(student_id=student_id, type=type, enrolled_at=enrolled_at)
        self.enrollments[(student_id, type)] = enrollment
        return enrollment

    async def verify(self, *, student_id, type, timestamp, sample=None):
        self.calls.append("verify")
        return self.match

    async def list_enrollments(self, student_id):
        self.calls.append("list")
        return [e for (sid, _), e in self.enrollments.items() if sid == student_id]

    async def remove(self, *, student_id, type):
        self.calls.append("remove")
        if (student_id, type) not in self.enrollments:
            raise NotFound()
        del self.enrollments[(student_id, type)]


class ScriptedAuthenticator:
    def __init__(self, result: Optional[LocalAuthResult] = None, *, hardware: bool = True, enrolled: bool = True):
        self.result = result or LocalAuthResult(success=True)
        self.hardware = hardware
        self.enrolled = enrolled
        self.types = (BiometricType.FINGERPRINT, BiometricType.FACE)
        self.prompts: list[str] = []

    async def has_hardware(self):
        return self.hardware

    async def is_enrolled(self):
        return self.enrolled

    async def supported_types(self):
        return self.types

    async def authenticate(self, prompt):
        self.prompts.append(prompt)
        return self.result


class InMemoryGuardians:
    def __init__(self, guardians: Optional[dict[str, list[str]]] = None):
        self.guardians = guardians or {}

    async def list_guardian_ids(self, student_id):
        return list(self.guardians.get(student_id, []))


class InMemoryTeachers:
    def __init__(self, teachers: Optional[dict[str, list[str]]] = None):
        self.teachers = teachers or {}

    async def list_teacher_ids(self, student_id):
        return list(self.teachers.get(student_id, []))


class InMemoryConsent:
    """Applies the same transitions the real backend enforces."""

    def __init__(self, guardians: InMemoryGuardians, clock: FixedClock):
        self.guardians = guardians
        self.clock = clock
        self.requests: dict[str, GuardianLinkRequest] = {}
        self.calls: list[str] = []
        self._ids = itertools.count(1)

    async def create(self, *, student_id, new_guardian_id):
        now = self.clock.now()
        request = GuardianLinkRequest(
            id=f"req-{next(self._ids)}",
            student_id=student_id,
            new_guardian_id=new_guardian_id,
            created_at=now,
            expires_at=now + CONSENT_WINDOW,
            total_guardians_required=len(self.guardians.guardians.get(student_id, [])),
        )
        self.requests[request.id] = request
        return request

    async def get(self, request_id):
        return self.requests.get(request_id)

    async def list_requests(self, *, student_id=None, state=None):
        items = [r for r in self.requests.values() if student_id is None or r.student_id == student_id]
        if state is not None:
            items = [r for r in items if r.state is state]
        return items

    async def approve(self, *, request_id, actor_id):
        self.calls.append("approve")
        updated = self.requests[request_id].with_approval(actor_id, self.clock.now())
        self.requests[request_id] = updated
        return updated

    async def reject(self, *, request_id, actor_id):
        self.calls.append("reject")
        updated = self.requests[request_id].with_rejection(actor_id, self.clock.now())
        self.requests[request_id] = updated
        return updated

    async def finalize(self, *, request_id, actor_id):
        self.calls.append("finalize")
        updated = self.requests[request_id].with_finalization(actor_id, self.clock.now())
        self.requests[request_id] = updated
        return updated


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2025, 3, 3, 7, 50)


@pytest.fixture
def clock(fixed_now) -> FixedClock:
    return FixedClock(fixed_now)


@pytest.fixture
def schedule() -> AttendanceSchedule:
    return AttendanceSchedule(
        check_in_start=time(6, 0),
        check_in_end=time(8, 0),
        check_out_start=time(14, 0),
        check_out_end=time(20, 0),
        school_start=time(7, 45),
    )


@pytest.fixture
def notifier() -> NotificationEmitter:
    return NotificationEmitter()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def attendance_repo() -> InMemoryAttendance:
    return InMemoryAttendance()


@pytest.fixture
def gateway(attendance_repo, schedule, notifier, clock) -> IngestionGateway:
    return IngestionGateway(attendance_repo, schedule=schedule, notifier=notifier, clock=clock)


@pytest.fixture
def otc_repo(attendance_repo) -> InMemoryOTC:
    return InMemoryOTC(attendance_repo)


@pytest.fixture
def qr_repo(attendance_repo) -> InMemoryQR:
    return InMemoryQR(attendance_repo)


@pytest.fixture
def biometric_repo() -> InMemoryBiometrics:
    return InMemoryBiometrics()


@pytest.fixture
def authenticator() -> ScriptedAuthenticator:
    return ScriptedAuthenticator()


@pytest.fixture
def guardians() -> InMemoryGuardians:
    return InMemoryGuardians({"S1": ["G1", "G2"]})


@pytest.fixture
def teachers() -> InMemoryTeachers:
    return InMemoryTeachers({"S1": ["T1", "T2"]})


@pytest.fixture
def consent_repo(guardians, clock) -> InMemoryConsent:
    return InMemoryConsent(guardians, clock)


@pytest.fixture
def make_event():
    ids = itertools.count(1)

    def _make(
        when: datetime,
        *,
        student_id: str = "S1",
        direction: Direction = Direction.CHECK_IN,
        method: Method = Method.QR,
        status=None,
        late_minutes: int = 0,
    ) -> AttendanceEvent:
        return AttendanceEvent(
            id=f"e{next(ids)}",
            student_id=student_id,
            direction=direction,
            method=method,
            timestamp=when,
            status=status or AttendanceStatus.PRESENT,
            late_minutes=late_minutes,
        )

    return _make
