from __future__ import annotations

import logging
from datetime import date
from typing import Iterable

from ..core.enums import Direction
from .model import Admission, AttendanceEvent, DedupKey

logger = logging.getLogger(__name__)


class DedupGuard:
    """Client-side fail-fast for duplicate (student, day, direction) records.

    Advisory only: the backend's uniqueness constraint stays authoritative, so
    a Conflict from the server must be handled even when admit() accepted.
    """

    def __init__(self):
        self._seen: set[DedupKey] = set()

    def admit(self, student_id: str, day: date, direction: Direction) -> Admission:
        key = DedupKey(student_id=str(student_id), day=day, direction=direction)
        if key in self._seen:
            logger.info("Duplicate %s for student %s on %s rejected locally", direction.value, student_id, day)
            return Admission(accepted=False, key=key)
        self._seen.add(key)
        return Admission(accepted=True, key=key)

    def release(self, key: DedupKey) -> None:
        """Undo an admission whose submission never reached the backend."""
        self._seen.discard(key)

    def seed(self, events: Iterable[AttendanceEvent]) -> None:
        for e in events:
            self._seen.add(e.dedup_key)

    def reset(self, *, before: date | None = None) -> None:
        if before is None:
            self._seen.clear()
            return
        self._seen = {k for k in self._seen if k.day >= before}

    def __contains__(self, key: DedupKey) -> bool:
        return key in self._seen
