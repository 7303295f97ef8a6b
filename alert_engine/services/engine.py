"""
Alert engine: the end-to-end decision pipeline.

1. Telemetry arrives and is stored
2. ThresholdClassifier produces a severity verdict
3. AlertLifecycle records an open alert, asking the PreferenceGate once
4. Requested effects are carried out: notify, arm or cancel escalation
5. Acknowledge / resolve / false-alarm close the alert and cancel escalation

Everything else here is thin query and preference plumbing over the record
stores. Each engine instance owns its locks, timers and audit history; there
is no process-wide state.
"""

import asyncio
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from alert_engine.config import AppConfig, get_config
from alert_engine.domain.errors import StoreUnavailable, ValidationError, parse_model
from alert_engine.domain.models import (
    Alert,
    AlertOrigin,
    AlertPreferences,
    AlertStatus,
    AlertType,
    CancelEscalation,
    Channel,
    CleanupReport,
    EmergencyContact,
    EmergencyContactInput,
    FallPayload,
    FallSubmission,
    IngestionResult,
    ManualAlertSubmission,
    ManualPayload,
    NotificationMessage,
    NotificationSummary,
    Notify,
    PreferenceSettings,
    ScheduleEscalation,
    Severity,
    TelemetryRecord,
    UnresolvedCounts,
    UserStats,
    VitalsAverages,
    VitalsPayload,
    VitalsReading,
    VitalsSubmission,
)
from alert_engine.observability import logger
from alert_engine.services.audit import AuditTrail
from alert_engine.services.classifier import classify, describe
from alert_engine.services.escalation import EscalationScheduler, Sleep
from alert_engine.services.lifecycle import AlertLifecycle, Transition
from alert_engine.services.notifier import (
    Delivery,
    LoggingNotifier,
    NotificationDispatcher,
    Notifier,
)
from alert_engine.services.preference_gate import PreferenceGate
from alert_engine.services.preferences import PreferenceRepository
from alert_engine.services.records import InMemoryRecordStore, RecordStore, guarded

CLOSED_STATUSES = [AlertStatus.RESOLVED, AlertStatus.FALSE_ALARM]


class AlertEngine:
    """
    Main service that orchestrates alert decisions and escalation.

    Collaborators are injected; anything omitted falls back to in-memory
    stores and a notifier that only logs, which is what the demo and tests use.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        alerts_store: RecordStore[Alert] | None = None,
        preferences_store: RecordStore[AlertPreferences] | None = None,
        readings_store: RecordStore[TelemetryRecord] | None = None,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config or get_config()
        self.clock = clock or (lambda: datetime.now(UTC))
        self.logger = logger.bind(component="alert_engine")

        self.alerts: RecordStore[Alert] = alerts_store or InMemoryRecordStore("alerts")
        self.readings: RecordStore[TelemetryRecord] = readings_store or InMemoryRecordStore(
            "readings"
        )
        self.audit = AuditTrail(self.config.alerting.audit_history_size)

        self.preferences = PreferenceRepository(
            preferences_store or InMemoryRecordStore("preferences")
        )
        self.gate = PreferenceGate(self.preferences, self.config.alerting.zone, self.clock)
        self.lifecycle = AlertLifecycle(self.alerts, self.gate, clock=self.clock)
        self.dispatcher = NotificationDispatcher(notifier or LoggingNotifier())
        self.escalation = EscalationScheduler(
            self.lifecycle, self.preferences, self.dispatcher, self.audit, sleep
        )

    async def __aenter__(self) -> "AlertEngine":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def ingest_vitals(
        self, submission: VitalsSubmission | Mapping[str, Any]
    ) -> IngestionResult:
        """Store a reading, classify it and raise an alert when it is abnormal."""
        data = parse_model(VitalsSubmission, submission, "vitals submission")

        record = TelemetryRecord(
            user_id=data.user_id,
            user_email=data.user_email,
            reading=data.reading,
            received_at=self.clock(),
        )
        await guarded("reading insert", self.readings.upsert(record.id, record))

        verdict = classify(data.reading)
        self.logger.info(
            "vitals_classified",
            user_id=data.user_id,
            reading_id=record.id,
            severity=verdict.overall.value,
            per_metric={m.value: s.value for m, s in verdict.per_metric.items()},
        )
        if not verdict.warrants_alert:
            return IngestionResult(reading_id=record.id, verdict=verdict)

        transition = await self.lifecycle.create(
            user_id=data.user_id,
            user_email=data.user_email,
            alert_type=AlertType.CRITICAL_VITALS,
            origin=AlertOrigin.VITALS,
            severity=verdict.overall,
            payload=VitalsPayload(reading=data.reading, breakdown=verdict.per_metric),
            message=describe(data.reading, verdict),
            occurred_at=data.reading.timestamp,
        )
        await self._apply(transition)
        return IngestionResult(
            reading_id=record.id,
            verdict=verdict,
            alert=transition.alert,
            decision=transition.decision,
        )

    async def ingest_fall(self, submission: FallSubmission | Mapping[str, Any]) -> IngestionResult:
        """Record a fall. Reported 'critical' falls are emergencies, 'caution' are warnings."""
        data = parse_model(FallSubmission, submission, "fall submission")

        severity = Severity.EMERGENCY if data.severity == "critical" else Severity.WARNING
        transition = await self.lifecycle.create(
            user_id=data.user_id,
            user_email=data.user_email,
            alert_type=AlertType.FALL_DETECTION,
            origin=AlertOrigin.FALL,
            severity=severity,
            payload=FallPayload(
                location=data.location,
                sensor=data.sensor_data,
                vitals=data.current_vitals,
                reported_severity=data.severity,
            ),
            message=(
                f"FALL DETECTED! Location: {data.location.describe()}. "
                "Immediate assistance may be required."
            ),
            occurred_at=data.timestamp,
        )
        await self._apply(transition)
        return IngestionResult(alert=transition.alert, decision=transition.decision)

    async def raise_manual_alert(
        self, submission: ManualAlertSubmission | Mapping[str, Any]
    ) -> IngestionResult:
        """Alert raised explicitly by the device or a caregiver."""
        data = parse_model(ManualAlertSubmission, submission, "manual alert")

        location = data.location or "location unknown"
        transition = await self.lifecycle.create(
            user_id=data.user_id,
            user_email=data.user_email,
            alert_type=data.alert_type,
            origin=AlertOrigin.MANUAL,
            severity=data.severity,
            payload=ManualPayload(location=data.location, vitals=data.current_vitals, note=data.note),
            message=f"EMERGENCY ALERT ({data.alert_type.value}) at {location}",
            occurred_at=data.timestamp,
        )
        await self._apply(transition)
        return IngestionResult(alert=transition.alert, decision=transition.decision)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def acknowledge(self, alert_id: str) -> Alert:
        return await self._finish(await self.lifecycle.acknowledge(alert_id))

    async def resolve(self, alert_id: str) -> Alert:
        return await self._finish(await self.lifecycle.resolve(alert_id))

    async def mark_false_alarm(self, alert_id: str) -> Alert:
        return await self._finish(await self.lifecycle.mark_false_alarm(alert_id))

    async def _finish(self, transition: Transition) -> Alert:
        await self._apply(transition)
        return transition.alert

    async def get_alert(self, alert_id: str) -> Alert:
        return await self.lifecycle.get(alert_id)

    async def _apply(self, transition: Transition) -> None:
        """Carry out the effects a lifecycle transition requested, in order."""
        alert = transition.alert
        if transition.decision is not None:
            await self.audit.record(
                "alert_created",
                alert.user_id,
                alert.id,
                origin=alert.origin.value,
                severity=alert.severity.value,
                send=transition.decision.send,
                reason=transition.decision.reason,
            )

        for effect in transition.effects:
            match effect:
                case Notify():
                    results = await self.dispatcher.deliver(
                        effect.user_id, effect.channels, effect.message
                    )
                    await self.audit.record(
                        "notification_sent",
                        effect.user_id,
                        effect.alert_id,
                        delivered=[r.unwrap().value for r in results if r.is_ok()],
                        failed=[r.unwrap_err().channel for r in results if r.is_err()],
                    )
                case ScheduleEscalation():
                    self.escalation.schedule(
                        effect.alert_id, effect.delay_minutes, effect.attempt, effect.max_attempts
                    )
                    await self.audit.record(
                        "escalation_scheduled",
                        alert.user_id,
                        effect.alert_id,
                        delay_minutes=effect.delay_minutes,
                        max_attempts=effect.max_attempts,
                    )
                case CancelEscalation():
                    cancelled = self.escalation.cancel(effect.alert_id)
                    await self.audit.record(
                        "alert_closed",
                        alert.user_id,
                        effect.alert_id,
                        status=alert.status.value,
                        escalation_cancelled=cancelled,
                    )

    # ------------------------------------------------------------------
    # Queries and retention
    # ------------------------------------------------------------------

    async def list_alerts(
        self, user_id: str, origin: AlertOrigin | None = None, limit: int | None = None
    ) -> list[Alert]:
        """Combined alert feed, newest first."""
        query: dict[str, Any] = {"user_id": user_id}
        if origin is not None:
            query["origin"] = origin
        return await guarded(
            "alert query",
            self.alerts.find(
                query,
                sort=[("created_at", -1)],
                limit=limit if limit is not None else self.config.alerting.history_limit,
            ),
        )

    async def unresolved_counts(self, user_id: str) -> UnresolvedCounts:
        counts: dict[str, int] = {}
        for origin in AlertOrigin:
            counts[origin.value] = await guarded(
                "alert count",
                self.alerts.count_documents(
                    {"user_id": user_id, "origin": origin, "status": AlertStatus.OPEN}
                ),
            )
        return UnresolvedCounts(**counts)

    async def cleanup(self, user_id: str, retention_days: int | None = None) -> CleanupReport:
        """Purge resolved and false-alarm alerts created before the retention cutoff."""
        days = retention_days if retention_days is not None else self.config.alerting.retention_days
        if days <= 0:
            raise ValidationError(f"retention_days must be positive, got {days}")

        cutoff = self.clock() - timedelta(days=days)
        deleted: dict[AlertOrigin, int] = {}
        for origin in AlertOrigin:
            deleted[origin] = await guarded(
                "alert cleanup",
                self.alerts.delete_many(
                    {
                        "user_id": user_id,
                        "origin": origin,
                        "status": {"$in": CLOSED_STATUSES},
                        "created_at": {"$lt": cutoff},
                    }
                ),
            )

        report = CleanupReport(retention_days=days, cutoff=cutoff, deleted=deleted)
        await self.audit.record(
            "alerts_purged",
            user_id,
            deleted={o.value: n for o, n in deleted.items()},
            total=report.total_deleted,
        )
        return report

    async def recent_readings(
        self, user_id: str, limit: int | None = None, days: int | None = None
    ) -> list[TelemetryRecord]:
        query: dict[str, Any] = {"user_id": user_id}
        if days is not None:
            query["reading.timestamp"] = {"$gte": self.clock() - timedelta(days=days)}
        return await guarded(
            "reading query",
            self.readings.find(
                query,
                sort=[("reading.timestamp", -1)],
                limit=limit if limit is not None else self.config.alerting.history_limit,
            ),
        )

    async def stats(self, user_id: str) -> UserStats:
        total_readings = await guarded(
            "reading count", self.readings.count_documents({"user_id": user_id})
        )
        alerts_by_origin = {
            origin: await guarded(
                "alert count",
                self.alerts.count_documents({"user_id": user_id, "origin": origin}),
            )
            for origin in AlertOrigin
        }
        latest = await self.recent_readings(user_id, limit=1)
        recent = await guarded(
            "reading query",
            self.readings.find(
                {
                    "user_id": user_id,
                    "reading.timestamp": {"$gte": self.clock() - timedelta(hours=24)},
                }
            ),
        )

        return UserStats(
            total_readings=total_readings,
            alerts_by_origin=alerts_by_origin,
            recent_readings=len(recent),
            latest_reading=latest[0].reading if latest else None,
            averages_24h=self._averages([r.reading for r in recent]),
        )

    @staticmethod
    def _averages(readings: list[VitalsReading]) -> VitalsAverages:
        if not readings:
            return VitalsAverages()

        def mean(values: list[float]) -> float:
            return sum(values) / len(values) if values else 0.0

        humidity = [r.humidity for r in readings if r.humidity is not None]
        return VitalsAverages(
            temperature=round(mean([r.temperature for r in readings]), 1),
            humidity=round(mean(humidity), 1),
            heart_rate=round(mean([r.heart_rate for r in readings])),
            spo2=round(mean([r.spo2 for r in readings])),
        )

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    async def get_preferences(self, user_id: str, user_email: str | None = None) -> AlertPreferences:
        return await self.preferences.get_or_create_default(user_id, user_email)

    async def update_preferences(
        self,
        user_id: str,
        settings: PreferenceSettings | Mapping[str, Any],
        user_email: str | None = None,
    ) -> AlertPreferences:
        return await self.preferences.replace(user_id, settings, user_email)

    async def list_contacts(self, user_id: str) -> list[EmergencyContact]:
        return await self.preferences.list_contacts(user_id)

    async def add_contact(
        self, user_id: str, contact: EmergencyContactInput | Mapping[str, Any]
    ) -> EmergencyContact:
        return await self.preferences.add_contact(user_id, contact)

    async def remove_contact(self, user_id: str, index: int) -> EmergencyContact:
        return await self.preferences.remove_contact(user_id, index)

    async def notification_summary(self, user_id: str) -> NotificationSummary:
        return await self.preferences.summary(user_id)

    async def send_test_notification(
        self, user_id: str, message: str | None = None, severity: Severity = Severity.NORMAL
    ) -> list[Delivery]:
        """Deliver through every enabled channel, ignoring toggles and quiet hours."""
        try:
            prefs = await self.preferences.find(user_id)
        except StoreUnavailable as e:
            self.logger.warning("preference_lookup_failed_fail_open", user_id=user_id, error=str(e))
            prefs = None

        channels = (prefs.settings.channels.enabled() if prefs else []) or [
            Channel.PUSH_NOTIFICATIONS
        ]
        results = await self.dispatcher.deliver(
            user_id,
            channels,
            NotificationMessage(
                text=message or self.config.alerting.test_message, severity=severity, kind="test"
            ),
        )
        await self.audit.record(
            "test_notification_sent", user_id, channels=[c.value for c in channels]
        )
        return results

    async def stop(self) -> None:
        """Gracefully stop: cancel every pending escalation."""
        self.logger.info("stopping_alert_engine", pending_escalations=len(self.escalation.pending()))
        await self.escalation.shutdown()
