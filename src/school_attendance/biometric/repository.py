from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence, Union

from ..core.enums import BiometricType
from .model import BiometricEnrollment, MatchResult

Sample = Union[bytes, str]


class BiometricRepository(Protocol):
    async def setup(
        self,
        *,
        student_id: str,
        type: BiometricType,
        enrolled_at: datetime,
        device_info: Optional[dict] = None,
        sample: Optional[Sample] = None,
    ) -> BiometricEnrollment:
        raise NotImplementedError

    async def verify(
        self,
        *,
        student_id: str,
        type: BiometricType,
        timestamp: datetime,
        sample: Optional[Sample] = None,
    ) -> MatchResult:
        raise NotImplementedError

    async def list_enrollments(self, student_id: str) -> Sequence[BiometricEnrollment]:
        raise NotImplementedError

    async def remove(self, *, student_id: str, type: BiometricType) -> None:
        raise NotImplementedError
