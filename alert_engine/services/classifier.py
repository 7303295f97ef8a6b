"""
Threshold classification of vital signs.

Each metric is classified on its own and the overall verdict is the highest
tier any metric reaches. Boundaries are strict: a temperature of exactly 38.5
is normal, 38.6 is a warning, 39.0 is a warning and anything above it critical.
"""

from dataclasses import dataclass

from alert_engine.domain.models import MetricName, Severity, SeverityVerdict, VitalsReading


@dataclass(frozen=True)
class Band:
    """Critical and warning limits for one metric. None means no limit on that side."""

    critical_above: float | None = None
    critical_below: float | None = None
    warning_above: float | None = None
    warning_below: float | None = None

    def classify(self, value: float) -> Severity:
        if _outside(value, self.critical_above, self.critical_below):
            return Severity.CRITICAL
        if _outside(value, self.warning_above, self.warning_below):
            return Severity.WARNING
        return Severity.NORMAL


def _outside(value: float, above: float | None, below: float | None) -> bool:
    return (above is not None and value > above) or (below is not None and value < below)


THRESHOLDS: dict[MetricName, Band] = {
    MetricName.TEMPERATURE: Band(
        critical_above=39.0, critical_below=35.0, warning_above=38.5, warning_below=35.5
    ),
    MetricName.HEART_RATE: Band(
        critical_above=130, critical_below=50, warning_above=120, warning_below=60
    ),
    MetricName.SPO2: Band(critical_below=88, warning_below=92),
}


def classify_metric(metric: MetricName, value: float) -> Severity:
    return THRESHOLDS[metric].classify(value)


def classify(reading: VitalsReading) -> SeverityVerdict:
    """Classify a reading. Pure, and total over finite inputs."""
    per_metric = {
        MetricName.TEMPERATURE: classify_metric(MetricName.TEMPERATURE, reading.temperature),
        MetricName.HEART_RATE: classify_metric(MetricName.HEART_RATE, reading.heart_rate),
        MetricName.SPO2: classify_metric(MetricName.SPO2, reading.spo2),
    }
    return SeverityVerdict(overall=Severity.highest(list(per_metric.values())), per_metric=per_metric)


def describe(reading: VitalsReading, verdict: SeverityVerdict) -> str:
    """Human-readable alert text naming the metrics that crossed a threshold."""
    label = "Critical" if verdict.overall.is_urgent else "Abnormal"
    triggered = ", ".join(m.value for m in verdict.triggered_metrics) or "none"
    return (
        f"{label} vital signs detected: Temp: {reading.temperature}°C, "
        f"HR: {reading.heart_rate:g} BPM, SpO2: {reading.spo2:g}% (triggered: {triggered})"
    )
