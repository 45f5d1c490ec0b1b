from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Optional, Sequence

from ..attendance.model import AttendanceEvent, RawAttendanceEvent
from ..attendance.service import IngestionGateway
from ..common.datetime_utils import Clock, SystemClock
from ..common.storage import KeyValueStore, student_key
from ..common.validators import require_non_empty
from ..core.constants import BIOMETRIC_STORAGE_KEY
from ..core.enums import BiometricType, Direction
from ..core.exceptions import AuthenticationFailed, Cancelled, NotFound, ValidationError
from .device import LocalAuthenticator
from .model import BiometricEnrollment, LocalAuthResult, SupportInfo
from .repository import BiometricRepository, Sample

logger = logging.getLogger(__name__)


class BiometricVerifier:
    """Fingerprint and face attendance.

    A local device challenge always runs before any backend call, so a device
    without working biometrics never reaches the server with a claimed match.
    """

    def __init__(
        self,
        biometrics: BiometricRepository,
        authenticator: LocalAuthenticator,
        gateway: IngestionGateway,
        store: KeyValueStore,
        *,
        clock: Optional[Clock] = None,
        prompt_timeout: Optional[float] = None,
    ):
        self._biometrics = biometrics
        self._authenticator = authenticator
        self._gateway = gateway
        self._store = store
        self._clock = clock or SystemClock()
        self._prompt_timeout = prompt_timeout

    async def check_support(self) -> SupportInfo:
        try:
            has_hardware = await self._authenticator.has_hardware()
            is_enrolled = await self._authenticator.is_enrolled()
            types = tuple(await self._authenticator.supported_types())
        except Exception:
            logger.exception("Biometric capability check failed")
            return SupportInfo(has_hardware=False, is_enrolled_on_device=False)
        return SupportInfo(has_hardware=has_hardware, is_enrolled_on_device=is_enrolled, supported_types=types)

    async def authenticate_locally(self, prompt: str = "Authenticate to continue") -> LocalAuthResult:
        """Device-level challenge, no network. Task cancellation propagates."""
        try:
            if self._prompt_timeout is not None:
                return await asyncio.wait_for(self._authenticator.authenticate(prompt), self._prompt_timeout)
            return await self._authenticator.authenticate(prompt)
        except asyncio.TimeoutError:
            return LocalAuthResult(success=False, error="Authentication timed out")

    async def _require_local_auth(self, prompt: str) -> None:
        result = await self.authenticate_locally(prompt)
        if result.cancelled:
            logger.info("Biometric prompt dismissed")
            raise Cancelled()
        if not result.success:
            logger.warning("Local biometric authentication failed: %s", result.error)
            raise AuthenticationFailed(result.error)

    async def _require_support(self, biometric_type: BiometricType) -> None:
        support = await self.check_support()
        if not support.is_supported:
            raise ValidationError("Biometric authentication is not available on this device")
        if support.supported_types and not support.supports(biometric_type):
            raise ValidationError(f"{biometric_type.value.capitalize()} is not supported on this device")

    # Local enrollment markers

    async def _local(self, student_id: str) -> dict[str, dict]:
        return await self._store.get(student_key(BIOMETRIC_STORAGE_KEY, student_id)) or {}

    async def _save_local(self, enrollment: BiometricEnrollment) -> None:
        data = await self._local(enrollment.student_id)
        data[enrollment.type.value] = enrollment.to_cache()
        await self._store.set(student_key(BIOMETRIC_STORAGE_KEY, enrollment.student_id), data)

    async def get_enrollments(self, student_id: str, *, force_refresh: bool = False) -> Sequence[BiometricEnrollment]:
        data = {} if force_refresh else await self._local(student_id)
        if not data:
            remote = await self._biometrics.list_enrollments(student_id)
            await self._store.set(
                student_key(BIOMETRIC_STORAGE_KEY, student_id),
                {e.type.value: e.to_cache() for e in remote},
            )
            return list(remote)
        return [BiometricEnrollment.from_cache(v) for v in data.values()]

    async def is_enrolled(self, student_id: str, biometric_type: BiometricType) -> bool:
        return any(e.type is biometric_type for e in await self.get_enrollments(student_id))

    # Operations

    async def _setup(
        self,
        student_id: str,
        biometric_type: BiometricType,
        *,
        sample: Optional[Sample] = None,
        device_info: Optional[dict] = None,
    ) -> BiometricEnrollment:
        student_id = require_non_empty(student_id, "Student ID")
        await self._require_support(biometric_type)
        await self._require_local_auth(f"Register {biometric_type.value} for attendance")

        enrollment = await self._biometrics.setup(
            student_id=student_id,
            type=biometric_type,
            enrolled_at=self._clock.now(),
            device_info=device_info,
            sample=sample,
        )
        await self._save_local(enrollment)
        logger.info("Enrolled %s for student %s", biometric_type.value, student_id)
        return enrollment

    async def setup_fingerprint(self, student_id: str, *, device_info: Optional[dict] = None) -> BiometricEnrollment:
        return await self._setup(student_id, BiometricType.FINGERPRINT, device_info=device_info)

    async def setup_face(self, student_id: str, sample: Sample, *, device_info: Optional[dict] = None) -> BiometricEnrollment:
        if not sample:
            raise ValidationError("A face sample is required")
        return await self._setup(student_id, BiometricType.FACE, sample=sample, device_info=device_info)

    async def verify(
        self,
        student_id: str,
        *,
        biometric_type: BiometricType = BiometricType.FINGERPRINT,
        sample: Optional[Sample] = None,
        direction: Direction = Direction.CHECK_IN,
    ) -> AttendanceEvent:
        student_id = require_non_empty(student_id, "Student ID")
        if biometric_type is BiometricType.FACE and not sample:
            raise ValidationError("A face sample is required")

        now = self._clock.now()
        self._gateway.check_window(direction, now)
        self._gateway.check_duplicate(student_id, direction, now)

        enrollments = {e.type: e for e in await self.get_enrollments(student_id)}
        if biometric_type not in enrollments:
            enrollments = {e.type: e for e in await self.get_enrollments(student_id, force_refresh=True)}
        enrollment = enrollments.get(biometric_type)
        if enrollment is None:
            raise NotFound(f"Student is not enrolled for {biometric_type.value}")

        await self._require_local_auth(f"Verify {biometric_type.value} to record attendance")

        match = await self._biometrics.verify(
            student_id=student_id,
            type=biometric_type,
            timestamp=self._clock.now(),
            sample=sample,
        )
        if not match.matched:
            logger.warning("Biometric %s did not match for student %s", biometric_type.value, student_id)
            raise AuthenticationFailed(match.message or "Biometric did not match")

        event = await self._gateway.ingest(
            RawAttendanceEvent(
                student_id=student_id,
                direction=direction,
                method=biometric_type.method,
                timestamp=self._clock.now(),
            )
        )
        await self._save_local(replace(enrollment, last_verified_at=event.timestamp))
        return event

    async def remove(self, student_id: str, biometric_type: BiometricType) -> None:
        """Delete the backend record and the local marker."""
        student_id = require_non_empty(student_id, "Student ID")
        try:
            await self._biometrics.remove(student_id=student_id, type=biometric_type)
        except NotFound:
            logger.info("No backend %s enrollment for student %s", biometric_type.value, student_id)

        data = await self._local(student_id)
        data.pop(biometric_type.value, None)
        key = student_key(BIOMETRIC_STORAGE_KEY, student_id)
        if data:
            await self._store.set(key, data)
        else:
            await self._store.delete(key)
        logger.info("Removed %s enrollment for student %s", biometric_type.value, student_id)
