"""
Tests for threshold classification.

Covers:
- Strict boundaries for every metric
- Overall severity is the highest per-metric tier
- Property: in-range readings are always normal, any input is classified
"""

from datetime import UTC, datetime

import pytest
from hypothesis import given
from hypothesis import strategies as st

from alert_engine.domain.models import MetricName, Severity, VitalsReading
from alert_engine.services.classifier import classify, classify_metric, describe

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


def reading(temperature: float = 36.8, heart_rate: float = 85, spo2: float = 97) -> VitalsReading:
    return VitalsReading(
        temperature=temperature, heart_rate=heart_rate, spo2=spo2, humidity=50, timestamp=NOW
    )


class TestTemperatureBoundaries:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (39.1, Severity.CRITICAL),
            (40.0, Severity.CRITICAL),
            (39.0, Severity.WARNING),  # strict > 39.0
            (38.6, Severity.WARNING),
            (38.5, Severity.NORMAL),  # strict > 38.5
            (36.8, Severity.NORMAL),
            (35.5, Severity.NORMAL),
            (35.4, Severity.WARNING),
            (35.0, Severity.WARNING),
            (34.9, Severity.CRITICAL),
        ],
    )
    def test_temperature_tiers(self, value: float, expected: Severity) -> None:
        assert classify_metric(MetricName.TEMPERATURE, value) is expected


class TestHeartRateBoundaries:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (131, Severity.CRITICAL),
            (130, Severity.WARNING),
            (121, Severity.WARNING),
            (120, Severity.NORMAL),
            (60, Severity.NORMAL),
            (59, Severity.WARNING),
            (50, Severity.WARNING),
            (49, Severity.CRITICAL),
        ],
    )
    def test_heart_rate_tiers(self, value: float, expected: Severity) -> None:
        assert classify_metric(MetricName.HEART_RATE, value) is expected


class TestSpO2Boundaries:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (100, Severity.NORMAL),
            (92, Severity.NORMAL),
            (91.9, Severity.WARNING),
            (88, Severity.WARNING),
            (87.9, Severity.CRITICAL),
        ],
    )
    def test_spo2_tiers(self, value: float, expected: Severity) -> None:
        assert classify_metric(MetricName.SPO2, value) is expected

    def test_high_spo2_never_alerts(self) -> None:
        assert classify_metric(MetricName.SPO2, 250) is Severity.NORMAL


class TestOverallVerdict:
    def test_overall_is_highest_metric(self) -> None:
        verdict = classify(reading(temperature=38.7, heart_rate=140, spo2=97))

        assert verdict.overall is Severity.CRITICAL
        assert verdict.per_metric[MetricName.TEMPERATURE] is Severity.WARNING
        assert verdict.per_metric[MetricName.HEART_RATE] is Severity.CRITICAL
        assert verdict.per_metric[MetricName.SPO2] is Severity.NORMAL
        assert verdict.triggered_metrics == [MetricName.TEMPERATURE, MetricName.HEART_RATE]

    def test_normal_reading_does_not_warrant_alert(self) -> None:
        verdict = classify(reading())
        assert verdict.overall is Severity.NORMAL
        assert not verdict.warrants_alert
        assert verdict.triggered_metrics == []

    def test_fever_alone_is_critical(self) -> None:
        verdict = classify(reading(temperature=40.0))
        assert verdict.overall is Severity.CRITICAL
        assert verdict.warrants_alert

    def test_describe_names_triggered_metrics(self) -> None:
        r = reading(spo2=85)
        text = describe(r, classify(r))
        assert text.startswith("Critical vital signs detected")
        assert "SpO2: 85%" in text
        assert "triggered: spo2" in text


class TestClassifierProperties:
    @given(
        temperature=st.floats(min_value=35.5, max_value=38.5),
        heart_rate=st.floats(min_value=60, max_value=120),
        spo2=st.floats(min_value=92, max_value=100),
    )
    def test_in_range_readings_are_normal(
        self, temperature: float, heart_rate: float, spo2: float
    ) -> None:
        assert classify(reading(temperature, heart_rate, spo2)).overall is Severity.NORMAL

    @given(
        temperature=st.floats(allow_nan=False, allow_infinity=False),
        heart_rate=st.floats(allow_nan=False, allow_infinity=False),
        spo2=st.floats(allow_nan=False, allow_infinity=False),
    )
    def test_classification_is_total_and_consistent(
        self, temperature: float, heart_rate: float, spo2: float
    ) -> None:
        verdict = classify(reading(temperature, heart_rate, spo2))

        assert verdict.overall in {Severity.NORMAL, Severity.WARNING, Severity.CRITICAL}
        assert verdict.overall.rank == max(s.rank for s in verdict.per_metric.values())
        assert classify(reading(temperature, heart_rate, spo2)) == verdict
