from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from ..attendance.model import AttendanceEvent, ResolvedEvent
from ..common.validators import ValidationResult
from ..core.enums import Direction
from .model import QRToken


class QRRepository(Protocol):
    async def generate(
        self,
        *,
        student_id: str,
        payload: str,
        issued_at: datetime,
        expires_at: Optional[datetime] = None,
        single_use: bool = False,
    ) -> QRToken:
        raise NotImplementedError

    async def get_for_student(self, student_id: str) -> Optional[QRToken]:
        raise NotImplementedError

    async def validate(self, *, payload: str, timestamp: datetime) -> ValidationResult:
        raise NotImplementedError

    async def scan(
        self,
        *,
        payload: str,
        direction: Direction,
        timestamp: datetime,
        resolved: Optional[ResolvedEvent] = None,
    ) -> AttendanceEvent:
        raise NotImplementedError

    async def revoke(self, *, student_id: str, reason: Optional[str] = None) -> None:
        raise NotImplementedError
