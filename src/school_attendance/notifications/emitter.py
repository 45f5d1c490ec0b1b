from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Union

logger = logging.getLogger(__name__)

Handler = Callable[[str, dict], Union[None, Awaitable[None]]]

ATTENDANCE_RECORDED = "attendance.recorded"
OTC_GENERATED = "otc.generated"
QR_REGENERATED = "qr.regenerated"
QR_REVOKED = "qr.revoked"
CONSENT_CREATED = "consent.created"
CONSENT_APPROVED = "consent.approved"
CONSENT_REJECTED = "consent.rejected"
CONSENT_FINALIZED = "consent.finalized"


class NotificationEmitter:
    """In-process publish/subscribe used by attendance and consent flows.

    Handlers may be plain functions or coroutines. A failing handler is logged
    and skipped; it never fails the operation that emitted the event.
    """

    def __init__(self):
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        self._handlers[topic].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[topic]:
                self._handlers[topic].remove(handler)

        return unsubscribe

    async def emit(self, topic: str, payload: dict[str, Any]) -> None:
        for handler in list(self._handlers.get(topic, ())):
            try:
                result = handler(topic, payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Notification handler for %s failed", topic)
