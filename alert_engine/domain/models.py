"""
Domain models for vital-sign alerting.

These models represent the core business concepts and are framework-agnostic.
They use Pydantic for validation; ingestion payloads arrive in the camelCase
shape the devices send, so the boundary models accept both aliases and field
names.
"""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, time
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return uuid.uuid4().hex


def _as_aware(value: datetime) -> datetime:
    """Readings without an offset are taken to be UTC."""
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


class Severity(str, Enum):
    """Severity tiers. EMERGENCY ranks with CRITICAL for suppression purposes."""

    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"
    EMERGENCY = "emergency"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @property
    def is_urgent(self) -> bool:
        return self.rank >= _SEVERITY_RANK[Severity.CRITICAL]

    @classmethod
    def highest(cls, severities: "list[Severity]") -> "Severity":
        return max(severities, key=lambda s: s.rank, default=cls.NORMAL)


_SEVERITY_RANK = {
    Severity.NORMAL: 0,
    Severity.WARNING: 1,
    Severity.CRITICAL: 2,
    Severity.EMERGENCY: 2,
}


class MetricName(str, Enum):
    """Vital signs that are classified against thresholds."""

    TEMPERATURE = "temperature"
    HEART_RATE = "heart_rate"
    SPO2 = "spo2"


class Channel(str, Enum):
    PUSH_NOTIFICATIONS = "push_notifications"
    SMS = "sms"
    EMAIL = "email"
    PHONE_CALL = "phone_call"


# Fixed delivery priority order
CHANNEL_PRIORITY: tuple[Channel, ...] = (
    Channel.PUSH_NOTIFICATIONS,
    Channel.SMS,
    Channel.EMAIL,
    Channel.PHONE_CALL,
)


class AlertType(str, Enum):
    """Alert categories a user can switch on or off."""

    CRITICAL_VITALS = "critical_vitals"
    FALL_DETECTION = "fall_detection"
    DEVICE_DISCONNECTION = "device_disconnection"
    LOW_BATTERY = "low_battery"
    MEDICATION_REMINDER = "medication_reminder"


class AlertOrigin(str, Enum):
    VITALS = "vitals"
    FALL = "fall"
    MANUAL = "manual"


class AlertStatus(str, Enum):
    OPEN = "open"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    FALSE_ALARM = "false_alarm"

    @property
    def is_terminal(self) -> bool:
        return self is not AlertStatus.OPEN


# ---------------------------------------------------------------------------
# Telemetry
# ---------------------------------------------------------------------------


class VitalsReading(BaseModel):
    """Immutable vitals snapshot from a wearable device."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    temperature: float = Field(description="Body temperature in degrees Celsius")
    heart_rate: float = Field(alias="heartRate", description="Beats per minute")
    spo2: float = Field(alias="spO2", description="Blood oxygen saturation percent")
    humidity: float | None = Field(default=None, description="Ambient humidity percent")
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def timestamp_is_aware(cls, value: datetime) -> datetime:
        return _as_aware(value)


class VitalsSnapshot(BaseModel):
    """Optional vitals attached to fall and manual alerts."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    temperature: float | None = None
    heart_rate: float | None = Field(default=None, alias="heartRate")
    spo2: float | None = Field(default=None, alias="spO2")
    humidity: float | None = None


class SeverityVerdict(BaseModel):
    """Per-metric classification reduced to a single overall tier."""

    model_config = ConfigDict(frozen=True)

    overall: Severity
    per_metric: dict[MetricName, Severity]

    @property
    def warrants_alert(self) -> bool:
        return self.overall is not Severity.NORMAL

    @property
    def triggered_metrics(self) -> list[MetricName]:
        return [m for m, s in self.per_metric.items() if s is not Severity.NORMAL]


class TelemetryRecord(BaseModel):
    """Stored telemetry reading."""

    id: str = Field(default_factory=_new_id)
    user_id: str
    user_email: str
    reading: VitalsReading
    received_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------


class ChannelToggles(BaseModel):
    push_notifications: bool = True
    sms: bool = True
    email: bool = True
    phone_call: bool = False

    def enabled(self) -> list[Channel]:
        """Enabled channels in fixed priority order."""
        return [c for c in CHANNEL_PRIORITY if getattr(self, c.value)]


class QuietHours(BaseModel):
    enabled: bool = False
    start_time: time = time(22, 0)
    end_time: time = time(7, 0)
    emergency_override: bool = True

    def window_text(self) -> str:
        return f"{self.start_time:%H:%M} - {self.end_time:%H:%M}"


class AlertTypeToggles(BaseModel):
    critical_vitals: bool = True
    fall_detection: bool = True
    device_disconnection: bool = True
    low_battery: bool = True
    medication_reminder: bool = False

    def is_enabled(self, alert_type: AlertType) -> bool:
        return bool(getattr(self, alert_type.value))


class EmergencyContact(BaseModel):
    """Person reached during escalation. Lower priority is contacted first."""

    name: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    email: str = ""
    relationship: str = "Contact"
    priority: int = Field(default=1, ge=0)
    enabled: bool = True


class EmergencyContactInput(BaseModel):
    """Contact as submitted by the user; priority defaults to the end of the list."""

    name: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    email: str = ""
    relationship: str = "Contact"
    priority: int | None = Field(default=None, ge=0)


class EscalationPolicy(BaseModel):
    enabled: bool = True
    delay_minutes: float = Field(default=5, gt=0)
    max_attempts: int = Field(default=3, ge=1)


class NotificationSound(BaseModel):
    enabled: bool = True
    volume: int = Field(default=80, ge=0, le=100)


class PreferenceSettings(BaseModel):
    """The user-editable preference body. Always replaced wholesale."""

    channels: ChannelToggles = Field(default_factory=ChannelToggles)
    quiet_hours: QuietHours = Field(default_factory=QuietHours)
    alert_types: AlertTypeToggles = Field(default_factory=AlertTypeToggles)
    emergency_contacts: list[EmergencyContact] = Field(default_factory=list)
    escalation: EscalationPolicy = Field(default_factory=EscalationPolicy)
    notification_sound: NotificationSound = Field(default_factory=NotificationSound)

    def contacts_by_priority(self) -> list[EmergencyContact]:
        """Enabled contacts by priority; sorted() is stable so ties keep insertion order."""
        return sorted(
            (c for c in self.emergency_contacts if c.enabled), key=lambda c: c.priority
        )


DEFAULT_PREFERENCE_SETTINGS = PreferenceSettings(
    channels=ChannelToggles(
        push_notifications=True,
        sms=True,
        email=True,
        phone_call=False,
    ),
    quiet_hours=QuietHours(
        enabled=False,
        start_time=time(22, 0),
        end_time=time(7, 0),
        emergency_override=True,
    ),
    alert_types=AlertTypeToggles(
        critical_vitals=True,
        fall_detection=True,
        device_disconnection=True,
        low_battery=True,
        medication_reminder=False,
    ),
    emergency_contacts=[],
    escalation=EscalationPolicy(enabled=True, delay_minutes=5, max_attempts=3),
    notification_sound=NotificationSound(enabled=True, volume=80),
)


class AlertPreferences(BaseModel):
    """One record per user, keyed by user_id."""

    user_id: str
    user_email: str
    settings: PreferenceSettings
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------


class Vector3(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


class FallLocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float | None = None
    longitude: float | None = None
    address: str | None = None

    @model_validator(mode="after")
    def coordinates_or_address(self) -> "FallLocation":
        has_coordinates = self.latitude is not None and self.longitude is not None
        if not has_coordinates and not self.address:
            raise ValueError("fall location needs latitude/longitude or an address")
        return self

    def describe(self) -> str:
        if self.address:
            return self.address
        return f"{self.latitude:.5f}, {self.longitude:.5f}"


class FallSensorSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    accelerometer: Vector3 | None = None
    gyroscope: Vector3 | None = None
    impact_force: float | None = None


class VitalsPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["vitals"] = "vitals"
    reading: VitalsReading
    breakdown: dict[MetricName, Severity]


class FallPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["fall"] = "fall"
    location: FallLocation
    sensor: FallSensorSnapshot = Field(default_factory=FallSensorSnapshot)
    vitals: VitalsSnapshot | None = None
    reported_severity: Literal["critical", "caution"] = "critical"


class ManualPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["manual"] = "manual"
    location: str | None = None
    vitals: VitalsSnapshot | None = None
    note: str | None = None


AlertPayload = Annotated[VitalsPayload | FallPayload | ManualPayload, Field(discriminator="kind")]


class Alert(BaseModel):
    """A single alert regardless of source; `origin` tags the payload variant."""

    id: str = Field(default_factory=_new_id)
    user_id: str
    user_email: str
    alert_type: AlertType
    severity: Severity
    origin: AlertOrigin
    payload: AlertPayload
    message: str
    status: AlertStatus = AlertStatus.OPEN
    occurred_at: datetime
    created_at: datetime = Field(default_factory=_utcnow)
    resolved_at: datetime | None = None
    notification_sent: bool = False
    channels_notified: list[Channel] = Field(default_factory=list)
    escalation_attempts_sent: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def payload_matches_origin(self) -> "Alert":
        if self.payload.kind != self.origin.value:
            raise ValueError(f"{self.origin.value} alert cannot carry a {self.payload.kind} payload")
        return self


# ---------------------------------------------------------------------------
# Ingestion boundary
# ---------------------------------------------------------------------------


class VitalsSubmission(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    user_email: str = Field(alias="userEmail", min_length=1)
    reading: VitalsReading = Field(alias="sensorData")


class FallSubmission(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    user_email: str = Field(alias="userEmail", min_length=1)
    timestamp: datetime
    location: FallLocation
    severity: Literal["critical", "caution"] = "critical"
    sensor_data: FallSensorSnapshot = Field(
        default_factory=FallSensorSnapshot, alias="sensorData"
    )
    current_vitals: VitalsSnapshot | None = Field(default=None, alias="currentVitals")

    @field_validator("timestamp")
    @classmethod
    def timestamp_is_aware(cls, value: datetime) -> datetime:
        return _as_aware(value)


class ManualAlertSubmission(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    user_email: str = Field(alias="userEmail", min_length=1)
    alert_type: AlertType = Field(default=AlertType.CRITICAL_VITALS, alias="alertType")
    severity: Severity = Severity.EMERGENCY
    timestamp: datetime
    location: str | None = None
    current_vitals: VitalsSnapshot | None = Field(default=None, alias="currentVitals")
    note: str | None = None

    @field_validator("timestamp")
    @classmethod
    def timestamp_is_aware(cls, value: datetime) -> datetime:
        return _as_aware(value)


# ---------------------------------------------------------------------------
# Decisions and effects
# ---------------------------------------------------------------------------


class DeliveryDecision(BaseModel):
    """Outcome of the preference gate, computed once per alert."""

    model_config = ConfigDict(frozen=True)

    send: bool
    channels: tuple[Channel, ...]
    reason: str
    escalation: EscalationPolicy | None = None

    @classmethod
    def fail_open(cls, reason: str) -> "DeliveryDecision":
        return cls(send=True, channels=(Channel.PUSH_NOTIFICATIONS,), reason=reason)


class NotificationMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    severity: Severity
    kind: str
    alert_id: str | None = None
    recipient: EmergencyContact | None = None
    attempt: int | None = None


@dataclass(frozen=True)
class Notify:
    alert_id: str
    user_id: str
    channels: tuple[Channel, ...]
    message: NotificationMessage


@dataclass(frozen=True)
class ScheduleEscalation:
    alert_id: str
    delay_minutes: float
    attempt: int
    max_attempts: int


@dataclass(frozen=True)
class CancelEscalation:
    alert_id: str


Effect = Notify | ScheduleEscalation | CancelEscalation


# ---------------------------------------------------------------------------
# Query results
# ---------------------------------------------------------------------------


class IngestionResult(BaseModel):
    reading_id: str | None = None
    verdict: SeverityVerdict | None = None
    alert: Alert | None = None
    decision: DeliveryDecision | None = None

    @property
    def notification_sent(self) -> bool:
        return self.decision is not None and self.decision.send


class UnresolvedCounts(BaseModel):
    vitals: int = 0
    fall: int = 0
    manual: int = 0

    @property
    def total(self) -> int:
        return self.vitals + self.fall + self.manual


class CleanupReport(BaseModel):
    retention_days: int
    cutoff: datetime
    deleted: dict[AlertOrigin, int]

    @property
    def total_deleted(self) -> int:
        return sum(self.deleted.values())


class VitalsAverages(BaseModel):
    temperature: float = 0.0
    humidity: float = 0.0
    heart_rate: int = 0
    spo2: int = 0


class UserStats(BaseModel):
    total_readings: int
    alerts_by_origin: dict[AlertOrigin, int]
    recent_readings: int
    latest_reading: VitalsReading | None
    averages_24h: VitalsAverages

    @property
    def total_alerts(self) -> int:
        return sum(self.alerts_by_origin.values())


class NotificationSummary(BaseModel):
    channels_enabled: int = 0
    quiet_hours: bool = False
    quiet_hours_window: str | None = None
    emergency_contacts: int = 0
    escalation_enabled: bool = False
    escalation_delay_minutes: float | None = None
