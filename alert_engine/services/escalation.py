"""
Deferred escalation to emergency contacts.

One asyncio task per armed alert, held in a mapping keyed by alert id and
removed on cancel or completion. The task sleeps for the configured delay,
then fires: if the alert is still open, every enabled emergency contact is
messaged in priority order, and the task sleeps again until max_attempts is
reached. Firing never blocks the request that armed or cancelled it.

Cancel ordering:
- A cancel that returns before the fire time prevents that fire.
- A cancel racing a fire that has already claimed its attempt may let that
  one attempt finish delivering. At most one stray escalation is the accepted
  failure mode; the alert lock makes sure the claim itself never acts on
  stale state.
"""

import asyncio
from collections.abc import Awaitable, Callable

from alert_engine.domain.errors import StoreUnavailable
from alert_engine.domain.models import Alert, Channel, EmergencyContact, NotificationMessage
from alert_engine.observability import logger
from alert_engine.services.audit import AuditTrail
from alert_engine.services.lifecycle import AlertLifecycle
from alert_engine.services.notifier import NotificationDispatcher
from alert_engine.services.preferences import PreferenceRepository

Sleep = Callable[[float], Awaitable[None]]

ESCALATION_CHANNEL = Channel.SMS


class EscalationScheduler:
    """Arms, re-arms and cancels per-alert escalation tasks."""

    def __init__(
        self,
        lifecycle: AlertLifecycle,
        preferences: PreferenceRepository,
        dispatcher: NotificationDispatcher,
        audit: AuditTrail | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.lifecycle = lifecycle
        self.preferences = preferences
        self.dispatcher = dispatcher
        self.audit = audit or AuditTrail()
        self._sleep = sleep
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self.logger = logger.bind(component="escalation_scheduler")

    def schedule(
        self, alert_id: str, delay_minutes: float, attempt: int = 1, max_attempts: int = 3
    ) -> None:
        """Arm escalation for an alert, replacing any task already armed for it."""
        if delay_minutes <= 0:
            raise ValueError("delay_minutes must be positive")
        if not 1 <= attempt <= max_attempts:
            raise ValueError(f"attempt {attempt} outside 1..{max_attempts}")

        self.cancel(alert_id)
        task = asyncio.create_task(
            self._run(alert_id, delay_minutes * 60, attempt, max_attempts),
            name=f"escalation-{alert_id}",
        )
        self._tasks[alert_id] = task
        self.logger.info(
            "escalation_scheduled",
            alert_id=alert_id,
            delay_minutes=delay_minutes,
            attempt=attempt,
            max_attempts=max_attempts,
        )

    def cancel(self, alert_id: str) -> bool:
        """Prevent any further fire for the alert. Returns whether a task was armed."""
        task = self._tasks.pop(alert_id, None)
        if task is None:
            return False
        task.cancel()
        self.logger.info("escalation_cancelled", alert_id=alert_id)
        return True

    def is_scheduled(self, alert_id: str) -> bool:
        return alert_id in self._tasks

    def pending(self) -> list[str]:
        return list(self._tasks)

    async def shutdown(self) -> None:
        """Cancel every armed task and wait for them to unwind."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.logger.info("escalation_scheduler_stopped", cancelled=len(tasks))

    async def _run(
        self, alert_id: str, delay_seconds: float, attempt: int, max_attempts: int
    ) -> None:
        try:
            for current in range(attempt, max_attempts + 1):
                await self._sleep(delay_seconds)
                if not await self._fire(alert_id, current, max_attempts):
                    break
        finally:
            if self._tasks.get(alert_id) is asyncio.current_task():
                del self._tasks[alert_id]

    async def _fire(self, alert_id: str, attempt: int, max_attempts: int) -> bool:
        """Run one attempt. Returns False when escalation should stop."""
        try:
            alert = await self.lifecycle.claim_escalation_attempt(alert_id)
        except StoreUnavailable as e:
            self.logger.error(
                "escalation_claim_failed", alert_id=alert_id, attempt=attempt, error=str(e)
            )
            return True

        if alert is None:
            self.logger.info("escalation_skipped_alert_closed", alert_id=alert_id, attempt=attempt)
            return False

        try:
            prefs = await self.preferences.find(alert.user_id)
        except StoreUnavailable as e:
            self.logger.error(
                "escalation_contacts_unavailable", alert_id=alert_id, attempt=attempt, error=str(e)
            )
            return True

        contacts = prefs.settings.contacts_by_priority() if prefs else []
        if not contacts:
            self.logger.warning(
                "no_emergency_contacts", alert_id=alert_id, user_id=alert.user_id, attempt=attempt
            )
        for contact in contacts:
            await self.dispatcher.deliver(
                alert.user_id,
                (ESCALATION_CHANNEL,),
                self._message(alert, contact, attempt, max_attempts),
            )

        await self.audit.record(
            "escalation_fired",
            alert.user_id,
            alert_id,
            attempt=attempt,
            max_attempts=max_attempts,
            contacts=[c.name for c in contacts],
        )
        return True

    @staticmethod
    def _message(
        alert: Alert, contact: EmergencyContact, attempt: int, max_attempts: int
    ) -> NotificationMessage:
        return NotificationMessage(
            text=(
                f"ESCALATION {attempt}/{max_attempts} for {contact.name} "
                f"({contact.relationship}): {alert.message}"
            ),
            severity=alert.severity,
            kind="escalation",
            alert_id=alert.id,
            recipient=contact,
            attempt=attempt,
        )
