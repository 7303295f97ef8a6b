"""
Alert lifecycle state machine.

    open -> acknowledged | resolved | false_alarm

Terminal states have no way out; repeating a transition on a terminal alert
is a no-op that returns the alert unchanged and emits no effects. Every
transition is computed on a fresh copy under the alert's lock and written in
one upsert, so a failed write leaves the stored alert untouched.

The lifecycle does not deliver anything itself. It returns effect requests
(Notify, ScheduleEscalation, CancelEscalation) for the caller to carry out.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from alert_engine.domain.errors import NotFound, ValidationError
from alert_engine.domain.models import (
    Alert,
    AlertOrigin,
    AlertPayload,
    AlertStatus,
    AlertType,
    CancelEscalation,
    DeliveryDecision,
    Effect,
    NotificationMessage,
    Notify,
    ScheduleEscalation,
    Severity,
)
from alert_engine.observability import logger
from alert_engine.services.preference_gate import PreferenceGate
from alert_engine.services.records import KeyedLocks, RecordStore, guarded


@dataclass
class Transition:
    """Alert state after an operation plus the side effects it requests."""

    alert: Alert
    effects: list[Effect] = field(default_factory=list)
    decision: DeliveryDecision | None = None
    changed: bool = True


class AlertLifecycle:
    """Owns every status change of an Alert."""

    def __init__(
        self,
        store: RecordStore[Alert],
        gate: PreferenceGate,
        locks: KeyedLocks | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.gate = gate
        self.locks = locks or KeyedLocks()
        self.clock = clock or (lambda: datetime.now(UTC))
        self.logger = logger.bind(component="alert_lifecycle")

    async def create(
        self,
        *,
        user_id: str,
        user_email: str,
        alert_type: AlertType,
        origin: AlertOrigin,
        severity: Severity,
        payload: AlertPayload,
        message: str,
        occurred_at: datetime,
    ) -> Transition:
        """
        Record a new open alert and decide delivery once.

        The alert is stored even when the gate suppresses delivery, so history
        stays complete. Store failures propagate as StoreUnavailable.
        """
        if severity is Severity.NORMAL:
            raise ValidationError("normal readings do not create alerts")

        decision = await self.gate.decide(user_id, alert_type, severity)

        try:
            alert = Alert(
                user_id=user_id,
                user_email=user_email,
                alert_type=alert_type,
                severity=severity,
                origin=origin,
                payload=payload,
                message=message,
                occurred_at=occurred_at,
                created_at=self.clock(),
                notification_sent=decision.send,
                channels_notified=list(decision.channels) if decision.send else [],
            )
        except ValueError as e:
            raise ValidationError(f"Invalid alert: {e}") from e

        await guarded("alert insert", self.store.upsert(alert.id, alert))

        # Arm escalation before delivery: a close during the send must find the task.
        effects: list[Effect] = []
        if decision.send:
            policy = decision.escalation
            if severity.is_urgent and policy is not None and policy.enabled:
                effects.append(
                    ScheduleEscalation(
                        alert_id=alert.id,
                        delay_minutes=policy.delay_minutes,
                        attempt=1,
                        max_attempts=policy.max_attempts,
                    )
                )
            effects.append(
                Notify(
                    alert_id=alert.id,
                    user_id=user_id,
                    channels=decision.channels,
                    message=NotificationMessage(
                        text=message,
                        severity=severity,
                        kind=alert_type.value,
                        alert_id=alert.id,
                    ),
                )
            )

        self.logger.info(
            "alert_created",
            alert_id=alert.id,
            user_id=user_id,
            origin=origin.value,
            severity=severity.value,
            notification_sent=decision.send,
            reason=decision.reason,
        )
        return Transition(alert=alert, effects=effects, decision=decision)

    async def get(self, alert_id: str) -> Alert:
        alert = await guarded("alert lookup", self.store.find_one(alert_id))
        if alert is None:
            raise NotFound("alert", alert_id)
        return alert

    async def acknowledge(self, alert_id: str) -> Transition:
        return await self._close(alert_id, AlertStatus.ACKNOWLEDGED)

    async def resolve(self, alert_id: str) -> Transition:
        return await self._close(alert_id, AlertStatus.RESOLVED)

    async def mark_false_alarm(self, alert_id: str) -> Transition:
        return await self._close(alert_id, AlertStatus.FALSE_ALARM)

    async def _close(self, alert_id: str, target: AlertStatus) -> Transition:
        async with self.locks.hold(alert_id):
            alert = await self.get(alert_id)

            if alert.status.is_terminal:
                self.logger.info(
                    "alert_transition_ignored",
                    alert_id=alert_id,
                    status=alert.status.value,
                    requested=target.value,
                )
                return Transition(alert=alert, changed=False)

            if target is AlertStatus.FALSE_ALARM and alert.origin is not AlertOrigin.FALL:
                raise ValidationError(
                    f"only fall alerts can be marked as false alarms, not {alert.origin.value}"
                )

            closed = alert.model_copy(
                update={"status": target, "resolved_at": self.clock()}
            )
            await guarded("alert update", self.store.upsert(alert_id, closed))

        self.logger.info("alert_closed", alert_id=alert_id, status=target.value)
        return Transition(alert=closed, effects=[CancelEscalation(alert_id=alert_id)])

    async def claim_escalation_attempt(self, alert_id: str) -> Alert | None:
        """
        Count an escalation attempt if the alert is still open.

        Runs under the alert's lock so an acknowledgement and an escalation
        fire never both act on the same open state. Returns None when the
        alert is gone or already closed, in which case nothing must be sent.
        """
        async with self.locks.hold(alert_id):
            alert = await guarded("alert lookup", self.store.find_one(alert_id))
            if alert is None or alert.status is not AlertStatus.OPEN:
                return None

            claimed = alert.model_copy(
                update={"escalation_attempts_sent": alert.escalation_attempts_sent + 1}
            )
            await guarded("alert update", self.store.upsert(alert_id, claimed))
            return claimed
