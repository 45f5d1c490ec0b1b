from __future__ import annotations

import logging
from typing import Iterable, Optional

from ..common.datetime_utils import Clock, SystemClock
from ..core.constants import DEFAULT_TREND_DAYS
from ..notifications.emitter import ATTENDANCE_RECORDED, NotificationEmitter
from . import aggregator
from .model import AttendanceEvent

logger = logging.getLogger(__name__)


class AttendanceDashboard:
    """Session-scoped attendance state shared by the screens that need it.

    Passed explicitly through the container; refreshed whenever the ingestion
    gateway emits ``attendance.recorded``.
    """

    def __init__(self, *, clock: Optional[Clock] = None, trend_days: int = DEFAULT_TREND_DAYS):
        self._clock = clock or SystemClock()
        self._trend_days = trend_days
        self._events: dict[str, AttendanceEvent] = {}
        self._unsubscribe = None
        self.summary = aggregator.summary([])
        self.streak = 0
        self.trends: list[aggregator.DayBucket] = []
        self.most_used_method = aggregator.most_used_method([])

    def attach(self, notifier: NotificationEmitter) -> None:
        self._unsubscribe = notifier.subscribe(ATTENDANCE_RECORDED, self._on_recorded)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def events(self) -> list[AttendanceEvent]:
        return sorted(self._events.values(), key=lambda e: e.timestamp, reverse=True)

    def load(self, events: Iterable[AttendanceEvent]) -> None:
        self._events = {e.id: e for e in events}
        self.refresh()

    def _on_recorded(self, topic: str, payload: dict) -> None:
        event = payload.get("event")
        if isinstance(event, AttendanceEvent):
            self._events[event.id] = event
            self.refresh()

    def refresh(self) -> None:
        events = self.events
        today = self._clock.now().date()
        self.summary = aggregator.summary(events)
        self.streak = aggregator.streak(aggregator.daily_status(events), today)
        self.trends = aggregator.trends(events, self._trend_days, today=today)
        self.most_used_method = aggregator.most_used_method(events)
        logger.debug("Dashboard refreshed with %d events", len(events))

    def recent(self, limit: int = 10) -> list[AttendanceEvent]:
        return self.events[:limit]
