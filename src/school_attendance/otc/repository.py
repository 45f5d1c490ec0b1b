from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from ..attendance.model import AttendanceEvent, ResolvedEvent
from ..common.validators import ValidationResult
from ..core.enums import Direction
from .model import OneTimeCode


class OTCRepository(Protocol):
    async def generate(self, *, student_id: str, purpose: str, expiry_minutes: int, now: datetime) -> OneTimeCode:
        raise NotImplementedError

    async def validate(self, *, code: str, student_id: Optional[str], timestamp: datetime) -> ValidationResult:
        """Non-consuming check. A wrong/expired code is a result, not an exception."""

        raise NotImplementedError

    async def submit(
        self,
        *,
        code: str,
        direction: Direction,
        timestamp: datetime,
        resolved: Optional[ResolvedEvent] = None,
    ) -> AttendanceEvent:
        """Consume the code and create the attendance record."""

        raise NotImplementedError
