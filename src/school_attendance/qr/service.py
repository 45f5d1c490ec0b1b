from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from ..attendance.model import AttendanceEvent, RawAttendanceEvent, ResolvedEvent
from ..attendance.service import IngestionGateway
from ..common.datetime_utils import Clock, SystemClock, format_timestamp, parse_timestamp, to_epoch_ms
from ..common.storage import KeyValueStore, delete_prefixed, student_key
from ..common.validators import ValidationResult, require_non_empty
from ..core.constants import QR_CACHE_DURATION, QR_STORAGE_KEY, QR_TAG
from ..core.enums import Direction, ErrorKind, Method
from ..core.exceptions import DomainError, ValidationError
from ..notifications.emitter import QR_REGENERATED, QR_REVOKED, NotificationEmitter
from .model import QRToken
from .payload import build_payload, image_data_uri, is_valid_payload, parse_payload
from .repository import QRRepository

logger = logging.getLogger(__name__)

REVOKED_KEY = "@qr_revoked"
CONSUMED_KEY = "@qr_consumed"

_SEMANTIC_KINDS = {
    ErrorKind.VALIDATION,
    ErrorKind.NOT_FOUND,
    ErrorKind.CONFLICT,
    ErrorKind.EXPIRED,
    ErrorKind.PERMISSION_DENIED,
}


class QRTokenManager:
    """Issue, check and redeem student QR tokens.

    The local cache only saves re-reading an unchanged token; it has its own
    fixed lifetime independent of the token's ``expires_at`` and is dropped on
    regenerate and revoke. Payloads revoked or consumed on this device are
    remembered so they fail locally even before the server is asked.
    """

    def __init__(
        self,
        qr: QRRepository,
        gateway: IngestionGateway,
        store: KeyValueStore,
        *,
        clock: Optional[Clock] = None,
        notifier: Optional[NotificationEmitter] = None,
        tag: str = QR_TAG,
        cache_duration: timedelta = QR_CACHE_DURATION,
    ):
        self._qr = qr
        self._gateway = gateway
        self._store = store
        self._clock = clock or SystemClock()
        self._notifier = notifier
        self._tag = tag
        self._cache_duration = cache_duration

    # Cache

    async def _cache(self, token: QRToken) -> None:
        await self._store.set(
            student_key(QR_STORAGE_KEY, token.student_id),
            {"token": token.to_cache(), "cachedAt": format_timestamp(self._clock.now())},
        )

    async def get_cached(self, student_id: str) -> Optional[QRToken]:
        data = await self._store.get(student_key(QR_STORAGE_KEY, student_id))
        if not data:
            return None
        if self._clock.now() - parse_timestamp(data["cachedAt"]) >= self._cache_duration:
            await self.clear_cache(student_id)
            return None
        return QRToken.from_cache(data["token"])

    async def clear_cache(self, student_id: str) -> None:
        await self._store.delete(student_key(QR_STORAGE_KEY, student_id))

    async def clear_all_caches(self) -> int:
        return await delete_prefixed(self._store, QR_STORAGE_KEY)

    async def _remembered(self, key: str) -> dict[str, str]:
        """Payloads remembered under ``key`` within the cache lifetime, with when they were added."""
        now = self._clock.now()
        known = await self._store.get(key) or {}
        return {p: at for p, at in known.items() if now - parse_timestamp(at) < self._cache_duration}

    async def _remember(self, key: str, payload: str) -> None:
        known = await self._remembered(key)
        known[payload] = format_timestamp(self._clock.now())
        await self._store.set(key, known)

    async def _is_remembered(self, key: str, payload: str) -> bool:
        return payload in await self._remembered(key)

    async def _next_issue_token(self, student_id: str, now: datetime) -> int:
        """Epoch-ms token strictly after every token known for the student on this device."""
        token = to_epoch_ms(now)
        known = [*(await self._remembered(REVOKED_KEY)), *(await self._remembered(CONSUMED_KEY))]
        cached = await self.get_cached(student_id)
        if cached is not None:
            known.append(cached.payload)

        for payload in known:
            if not is_valid_payload(payload, tag=self._tag):
                continue
            parsed = parse_payload(payload, tag=self._tag)
            if parsed.student_id == student_id:
                token = max(token, parsed.issued_at_token + 1)
        return token

    # Operations

    async def generate(
        self,
        student_id: str,
        *,
        expires_at: Optional[datetime] = None,
        single_use: bool = False,
    ) -> QRToken:
        student_id = require_non_empty(student_id, "Student ID")
        now = self._clock.now()
        if expires_at is not None and expires_at <= now:
            raise ValidationError("Expiry must be in the future")

        payload = build_payload(student_id, await self._next_issue_token(student_id, now), tag=self._tag)
        token = await self._qr.generate(
            student_id=student_id,
            payload=payload,
            issued_at=now,
            expires_at=expires_at,
            single_use=single_use,
        )
        await self._cache(token)
        logger.info("Issued QR token for student %s (single_use=%s)", student_id, single_use)
        return token

    async def get_token(self, student_id: str, *, force_refresh: bool = False) -> Optional[QRToken]:
        if not force_refresh:
            cached = await self.get_cached(student_id)
            if cached is not None:
                return cached
        token = await self._qr.get_for_student(student_id)
        if token is not None:
            await self._cache(token)
        return token

    async def validate(self, payload: str) -> ValidationResult:
        try:
            parsed = parse_payload(payload, tag=self._tag)
        except ValidationError as exc:
            return ValidationResult.fail(ErrorKind.VALIDATION, exc.message)

        payload = payload.strip()
        sid = parsed.student_id
        if await self._is_remembered(REVOKED_KEY, payload):
            return ValidationResult.fail(ErrorKind.EXPIRED, "QR code has been revoked", sid)
        if await self._is_remembered(CONSUMED_KEY, payload):
            return ValidationResult.fail(ErrorKind.CONFLICT, "QR code has already been used", sid)

        now = self._clock.now()
        cached = await self.get_cached(sid)
        if cached is not None and cached.payload == payload and not cached.is_usable(now):
            message = "QR code has been revoked" if cached.revoked else "QR code has expired"
            return ValidationResult.fail(ErrorKind.EXPIRED, message, sid)

        try:
            result = await self._qr.validate(payload=payload, timestamp=now)
        except DomainError as exc:
            if exc.kind not in _SEMANTIC_KINDS:
                raise
            result = ValidationResult.fail(exc.kind, exc.message, sid)

        if not result.valid:
            logger.warning("QR payload for student %s rejected: %s", sid, result.message)
        return ValidationResult(valid=result.valid, reason=result.reason, message=result.message, student_id=result.student_id or sid)

    async def scan(self, payload: str, direction: Direction) -> AttendanceEvent:
        parsed = parse_payload(payload, tag=self._tag)
        payload = payload.strip()
        now = self._clock.now()
        self._gateway.check_window(direction, now)
        self._gateway.check_duplicate(parsed.student_id, direction, now)

        check = await self.validate(payload)
        check.raise_for_reason()

        async def _submit(resolved: ResolvedEvent) -> AttendanceEvent:
            return await self._qr.scan(
                payload=payload,
                direction=resolved.direction,
                timestamp=resolved.timestamp,
                resolved=resolved,
            )

        event = await self._gateway.ingest(
            RawAttendanceEvent(
                student_id=check.student_id or parsed.student_id,
                direction=direction,
                method=Method.QR,
                timestamp=self._clock.now(),
            ),
            submit=_submit,
        )

        cached = await self.get_cached(parsed.student_id)
        if cached is not None and cached.payload == payload and cached.single_use:
            await self._remember(CONSUMED_KEY, payload)
            await self.clear_cache(parsed.student_id)
        return event

    async def regenerate(
        self,
        student_id: str,
        reason: str,
        *,
        expires_at: Optional[datetime] = None,
        single_use: bool = False,
    ) -> QRToken:
        """Retire the student's current token and issue a fresh one."""
        student_id = require_non_empty(student_id, "Student ID")
        previous = await self.get_cached(student_id)

        await self._qr.revoke(student_id=student_id, reason=reason)
        if previous is not None:
            await self._remember(REVOKED_KEY, previous.payload)
        await self.clear_cache(student_id)

        token = await self.generate(student_id, expires_at=expires_at, single_use=single_use)
        logger.warning("Regenerated QR token for student %s: %s", student_id, reason)
        if self._notifier is not None:
            await self._notifier.emit(QR_REGENERATED, {"studentId": student_id, "reason": reason})
        return token

    async def revoke(self, student_id: str, reason: Optional[str] = None) -> None:
        student_id = require_non_empty(student_id, "Student ID")
        previous = await self.get_cached(student_id)

        await self._qr.revoke(student_id=student_id, reason=reason)
        if previous is not None:
            await self._remember(REVOKED_KEY, previous.payload)
        await self.clear_cache(student_id)

        logger.warning("Revoked QR token for student %s", student_id)
        if self._notifier is not None:
            await self._notifier.emit(QR_REVOKED, {"studentId": student_id})

    def image_data_uri(self, token: QRToken) -> str:
        return image_data_uri(token.payload)
