from __future__ import annotations

import base64
from datetime import datetime
from typing import Any, Optional, Sequence

from ..api.client import ApiClient
from ..common.datetime_utils import format_timestamp, parse_timestamp
from ..core.enums import BiometricType
from ..core.exceptions import NotFound, ServerError, ValidationError
from .model import BiometricEnrollment, MatchResult
from .repository import BiometricRepository, Sample


def _encode_sample(sample: Sample) -> str:
    if isinstance(sample, bytes):
        return base64.b64encode(sample).decode("ascii")
    return sample


def _enrollment(data: Any, *, student_id: str) -> BiometricEnrollment:
    if not isinstance(data, dict):
        raise ServerError("Malformed biometric enrollment from server.")
    try:
        return BiometricEnrollment(
            student_id=str(data.get("studentId") or student_id),
            type=BiometricType(data["type"]),
            enrolled_at=parse_timestamp(data["enrolledAt"]),
            last_verified_at=parse_timestamp(data["lastVerifiedAt"]) if data.get("lastVerifiedAt") else None,
        )
    except (KeyError, ValueError, ValidationError) as exc:
        raise ServerError(f"Malformed biometric enrollment from server: {exc}")


class HttpBiometricRepository(BiometricRepository):
    def __init__(self, api: ApiClient):
        self._api = api

    async def setup(
        self,
        *,
        student_id: str,
        type: BiometricType,
        enrolled_at: datetime,
        device_info: Optional[dict] = None,
        sample: Optional[Sample] = None,
    ) -> BiometricEnrollment:
        body: dict[str, Any] = {
            "studentId": student_id,
            "type": type.value,
            "enrolledAt": format_timestamp(enrolled_at),
        }
        if device_info:
            body["deviceInfo"] = device_info
        if sample is not None:
            body["sample"] = _encode_sample(sample)
        data = await self._api.post("/biometric/setup/", body)
        return _enrollment(data if isinstance(data, dict) and data.get("type") else body, student_id=student_id)

    async def verify(
        self,
        *,
        student_id: str,
        type: BiometricType,
        timestamp: datetime,
        sample: Optional[Sample] = None,
    ) -> MatchResult:
        body: dict[str, Any] = {
            "studentId": student_id,
            "type": type.value,
            "timestamp": format_timestamp(timestamp),
        }
        if sample is not None:
            body["sample"] = _encode_sample(sample)
        data = await self._api.post("/biometric/verify/", body) or {}
        confidence = data.get("confidence")
        return MatchResult(
            matched=bool(data.get("matched", data.get("verified", False))),
            confidence=float(confidence) if confidence is not None else None,
            message=data.get("message"),
        )

    async def list_enrollments(self, student_id: str) -> Sequence[BiometricEnrollment]:
        try:
            data = await self._api.get(f"/biometric/{student_id}/")
        except NotFound:
            return []
        rows = data.get("results", []) if isinstance(data, dict) else (data or [])
        return [_enrollment(r, student_id=student_id) for r in rows]

    async def remove(self, *, student_id: str, type: BiometricType) -> None:
        await self._api.delete(f"/biometric/{student_id}/{type.value}/")
