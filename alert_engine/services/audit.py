"""Structured audit stream of everything the engine decides and does."""

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from alert_engine.observability import logger


@dataclass(frozen=True)
class AuditEvent:
    """One engine event, e.g. alert_created, notification_sent, escalation_fired."""

    kind: str
    user_id: str
    alert_id: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)
    at: datetime = field(default_factory=lambda: datetime.now(UTC))


Subscriber = Callable[[AuditEvent], Awaitable[None] | None]


class AuditTrail:
    """Bounded in-memory history plus fan-out to subscribers."""

    def __init__(self, max_events: int = 1000) -> None:
        self.history: deque[AuditEvent] = deque(maxlen=max_events)
        self._subscribers: list[Subscriber] = []
        self.logger = logger.bind(component="audit_trail")

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    async def record(
        self, kind: str, user_id: str, alert_id: str | None = None, **detail: Any
    ) -> AuditEvent:
        event = AuditEvent(kind=kind, user_id=user_id, alert_id=alert_id, detail=detail)
        self.history.append(event)
        self.logger.info(kind, user_id=user_id, alert_id=alert_id, **detail)

        for subscriber in self._subscribers:
            try:
                outcome = subscriber(event)
                if asyncio.iscoroutine(outcome):
                    await outcome
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.error("audit_subscriber_failed", error=str(e), kind=kind)
        return event

    def events(
        self, kind: str | None = None, alert_id: str | None = None
    ) -> list[AuditEvent]:
        return [
            e
            for e in self.history
            if (kind is None or e.kind == kind) and (alert_id is None or e.alert_id == alert_id)
        ]
