from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from ..attendance.model import AttendanceEvent, RawAttendanceEvent, ResolvedEvent
from ..attendance.service import IngestionGateway
from ..common.datetime_utils import Clock, Remaining, SystemClock, remaining
from ..common.storage import KeyValueStore, delete_prefixed, student_key
from ..common.validators import ValidationResult, require_non_empty, require_positive
from ..core.constants import OTC_DEFAULT_PURPOSE, OTC_LENGTH, OTC_MAX_ATTEMPTS, OTC_STORAGE_KEY, OTC_TTL_MINUTES
from ..core.enums import Direction, ErrorKind, Method
from ..core.exceptions import DomainError, TooManyAttempts, ValidationError
from ..notifications.emitter import OTC_GENERATED, NotificationEmitter
from .codec import mask_code, validate_format
from .model import OneTimeCode
from .repository import OTCRepository

logger = logging.getLogger(__name__)

_SEMANTIC_KINDS = {
    ErrorKind.VALIDATION,
    ErrorKind.NOT_FOUND,
    ErrorKind.CONFLICT,
    ErrorKind.EXPIRED,
    ErrorKind.TOO_MANY_ATTEMPTS,
    ErrorKind.PERMISSION_DENIED,
}

_ANY_STUDENT = "*"


class OTCManager:
    """Generate, validate and redeem one-time attendance codes.

    Codes are cached per student (one active code per student, newest wins).
    Failures are returned or raised as typed errors and never retried here.
    After ``max_attempts`` wrong codes the student's active code is exhausted
    and only a fresh ``generate`` makes it usable again.
    """

    def __init__(
        self,
        otc: OTCRepository,
        gateway: IngestionGateway,
        store: KeyValueStore,
        *,
        clock: Optional[Clock] = None,
        notifier: Optional[NotificationEmitter] = None,
        length: int = OTC_LENGTH,
        ttl_minutes: int = OTC_TTL_MINUTES,
        max_attempts: int = OTC_MAX_ATTEMPTS,
    ):
        self._otc = otc
        self._gateway = gateway
        self._store = store
        self._clock = clock or SystemClock()
        self._notifier = notifier
        self._length = int(length)
        self._ttl_minutes = int(ttl_minutes)
        self._max_attempts = int(max_attempts)
        self._failures: dict[str, int] = {}
        self._exhausted: set[str] = set()

    # Cache

    async def get_cached(self, student_id: str) -> Optional[OneTimeCode]:
        data = await self._store.get(student_key(OTC_STORAGE_KEY, student_id))
        return OneTimeCode.from_cache(data) if data else None

    async def _find_cached(self, code: str, student_id: Optional[str]) -> Optional[OneTimeCode]:
        if student_id:
            cached = await self.get_cached(student_id)
            return cached if cached and cached.code == code else None
        for key in await self._store.keys():
            if not key.startswith(OTC_STORAGE_KEY):
                continue
            data = await self._store.get(key)
            if data and str(data.get("code")) == code:
                return OneTimeCode.from_cache(data)
        return None

    async def clear_cache(self, student_id: str) -> None:
        await self._store.delete(student_key(OTC_STORAGE_KEY, student_id))

    async def clear_all_caches(self) -> int:
        return await delete_prefixed(self._store, OTC_STORAGE_KEY)

    # Helpers

    def remaining(self, expires_at: datetime, now: Optional[datetime] = None) -> Remaining:
        return remaining(expires_at, now or self._clock.now())

    def is_expired(self, otc: Optional[OneTimeCode], now: Optional[datetime] = None) -> bool:
        if otc is None:
            return True
        return otc.is_expired(now or self._clock.now())

    def _record_failure(self, student_id: Optional[str]) -> None:
        key = student_id or _ANY_STUDENT
        self._failures[key] = self._failures.get(key, 0) + 1
        if self._failures[key] >= self._max_attempts:
            logger.warning("OTC attempts exhausted for student %s", key)
            self._exhausted.add(key)

    def _reset_attempts(self, student_id: str) -> None:
        self._failures.pop(student_id, None)
        self._exhausted.discard(student_id)

    def _is_exhausted(self, student_id: Optional[str]) -> bool:
        return (student_id or _ANY_STUDENT) in self._exhausted

    # Operations

    async def generate(
        self,
        student_id: str,
        purpose: Optional[str] = None,
        ttl_minutes: Optional[int] = None,
    ) -> OneTimeCode:
        student_id = require_non_empty(student_id, "Student ID")
        ttl = require_positive(ttl_minutes if ttl_minutes is not None else self._ttl_minutes, "Code lifetime")
        now = self._clock.now()

        otc = await self._otc.generate(
            student_id=student_id,
            purpose=purpose or OTC_DEFAULT_PURPOSE,
            expiry_minutes=ttl,
            now=now,
        )
        await self._store.set(student_key(OTC_STORAGE_KEY, otc.student_id), otc.to_cache())
        self._reset_attempts(otc.student_id)
        logger.info("Generated OTC %s for student %s (expires %s)", mask_code(otc.code), otc.student_id, otc.expires_at)

        if self._notifier is not None:
            await self._notifier.emit(OTC_GENERATED, {"studentId": otc.student_id, "expiresAt": otc.expires_at})
        return otc

    async def validate(self, code: str, student_id: Optional[str] = None) -> ValidationResult:
        """Check a code without consuming it.

        Format and locally known expiry are decided without a network call;
        network and server failures are raised, not folded into the result.
        """

        try:
            clean = validate_format(code, length=self._length)
        except ValidationError as exc:
            return ValidationResult.fail(ErrorKind.VALIDATION, exc.message, student_id)

        if self._is_exhausted(student_id):
            return ValidationResult.fail(ErrorKind.TOO_MANY_ATTEMPTS, TooManyAttempts.default_message, student_id)

        now = self._clock.now()
        cached = await self._find_cached(clean, student_id)
        if cached is not None:
            if cached.consumed:
                return ValidationResult.fail(ErrorKind.CONFLICT, "Code has already been used", cached.student_id)
            if cached.is_expired(now):
                return ValidationResult.fail(ErrorKind.EXPIRED, "Code has expired", cached.student_id)

        try:
            result = await self._otc.validate(code=clean, student_id=student_id, timestamp=now)
        except DomainError as exc:
            if exc.kind not in _SEMANTIC_KINDS:
                raise
            result = ValidationResult.fail(exc.kind, exc.message, student_id)

        if result.valid:
            logger.info("OTC %s valid for student %s", mask_code(clean), result.student_id)
            return result

        logger.warning("OTC %s rejected: %s", mask_code(clean), result.reason.value if result.reason else "invalid")
        if result.reason is ErrorKind.TOO_MANY_ATTEMPTS:
            self._exhausted.add(result.student_id or student_id or _ANY_STUDENT)
        elif result.reason in {ErrorKind.VALIDATION, ErrorKind.NOT_FOUND}:
            self._record_failure(result.student_id or student_id)
        return result

    async def submit(self, code: str, direction: Direction, student_id: Optional[str] = None) -> AttendanceEvent:
        """Validate, then redeem the code through the ingestion gateway.

        On success the cached code for the resolved student is evicted; on any
        failure the cache is left as is so the user can retry.
        """

        clean = validate_format(code, length=self._length)
        now = self._clock.now()
        self._gateway.check_window(direction, now)
        if student_id:
            self._gateway.check_duplicate(student_id, direction, now)

        check = await self.validate(clean, student_id)
        check.raise_for_reason()

        resolved_student = check.student_id or student_id
        if not resolved_student:
            cached = await self._find_cached(clean, None)
            resolved_student = cached.student_id if cached else None
        if not resolved_student:
            raise ValidationError("Could not resolve the student for this code")

        async def _submit(resolved: ResolvedEvent) -> AttendanceEvent:
            return await self._otc.submit(
                code=clean,
                direction=resolved.direction,
                timestamp=resolved.timestamp,
                resolved=resolved,
            )

        try:
            event = await self._gateway.ingest(
                RawAttendanceEvent(
                    student_id=resolved_student,
                    direction=direction,
                    method=Method.OTC,
                    timestamp=self._clock.now(),
                ),
                submit=_submit,
            )
        except TooManyAttempts:
            self._exhausted.add(resolved_student)
            raise

        await self.clear_cache(resolved_student)
        self._reset_attempts(resolved_student)
        logger.info("OTC %s redeemed for student %s", mask_code(clean), resolved_student)
        return event
