"""
Preference-aware delivery decision.

The gate answers one question per alert: send or suppress, and through which
channels. It fails open. A missing preference record or any store error yields
send=True on push notifications.
"""

from collections.abc import Callable
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from alert_engine.domain.models import (
    AlertPreferences,
    AlertType,
    Channel,
    DeliveryDecision,
    Severity,
)
from alert_engine.observability import logger
from alert_engine.services.preferences import PreferenceRepository
from alert_engine.services.quiet_hours import is_quiet, local_time


class PreferenceGate:
    """Decides send/suppress and the channel set from stored preferences."""

    def __init__(
        self,
        preferences: PreferenceRepository,
        zone: ZoneInfo,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.preferences = preferences
        self.zone = zone
        self.clock = clock or (lambda: datetime.now(UTC))
        self.logger = logger.bind(component="preference_gate")

    async def decide(
        self, user_id: str, alert_type: AlertType, severity: Severity
    ) -> DeliveryDecision:
        try:
            prefs = await self.preferences.find(user_id)
        except Exception as e:
            self.logger.warning(
                "preference_lookup_failed_fail_open", user_id=user_id, error=str(e)
            )
            return DeliveryDecision.fail_open("preference lookup failed")

        if prefs is None:
            return DeliveryDecision.fail_open("no preferences stored")

        decision = self.evaluate(prefs, alert_type, severity)
        self.logger.debug(
            "delivery_decided",
            user_id=user_id,
            alert_type=alert_type.value,
            severity=severity.value,
            send=decision.send,
            reason=decision.reason,
        )
        return decision

    def evaluate(
        self, prefs: AlertPreferences, alert_type: AlertType, severity: Severity
    ) -> DeliveryDecision:
        """Pure part of the decision, given an already loaded record."""
        settings = prefs.settings
        channels = tuple(settings.channels.enabled()) or (Channel.PUSH_NOTIFICATIONS,)
        escalation = settings.escalation

        if not settings.alert_types.is_enabled(alert_type):
            return DeliveryDecision(
                send=False,
                channels=channels,
                reason=f"{alert_type.value} alerts disabled",
                escalation=escalation,
            )

        quiet = settings.quiet_hours
        if is_quiet(quiet, local_time(self.zone, self.clock())) and not severity.is_urgent:
            if not quiet.emergency_override:
                return DeliveryDecision(
                    send=False, channels=channels, reason="quiet hours", escalation=escalation
                )
            return DeliveryDecision(
                send=True,
                channels=channels,
                reason="quiet hours overridden",
                escalation=escalation,
            )

        return DeliveryDecision(send=True, channels=channels, reason="allowed", escalation=escalation)
