"""
Tests for notification delivery and the audit trail.

Covers:
- Result semantics
- Dispatcher fan-out, ordering and failure capture
- Audit history bounds and subscribers
"""

import pytest
from conftest import RecordingNotifier

from alert_engine.domain.errors import NotifierFailure
from alert_engine.domain.models import Channel, NotificationMessage, Severity
from alert_engine.services.audit import AuditEvent, AuditTrail
from alert_engine.services.notifier import LoggingNotifier, NotificationDispatcher, Result

MESSAGE = NotificationMessage(text="Check on Lola", severity=Severity.CRITICAL, kind="test")


class TestResult:
    def test_ok(self) -> None:
        result: Result[Channel, NotifierFailure] = Result.ok(Channel.SMS)
        assert result.is_ok() and not result.is_err()
        assert result.unwrap() is Channel.SMS

    def test_err(self) -> None:
        failure = NotifierFailure("sms", "gateway down")
        result: Result[Channel, NotifierFailure] = Result.err(failure)

        assert result.is_err()
        assert result.unwrap_err() is failure
        assert result.unwrap_or(Channel.EMAIL) is Channel.EMAIL
        with pytest.raises(NotifierFailure):
            result.unwrap()

    def test_requires_exactly_one_side(self) -> None:
        with pytest.raises(ValueError):
            Result()
        with pytest.raises(ValueError):
            Result(value=Channel.SMS, error=NotifierFailure("sms", "x"))


class TestDispatcher:
    async def test_results_follow_channel_order(self) -> None:
        notifier = RecordingNotifier(failing_channels={Channel.SMS}, raise_on={Channel.EMAIL})
        dispatcher = NotificationDispatcher(notifier)

        results = await dispatcher.deliver(
            "user-1", (Channel.PUSH_NOTIFICATIONS, Channel.SMS, Channel.EMAIL), MESSAGE
        )

        assert results[0].unwrap() is Channel.PUSH_NOTIFICATIONS
        assert results[1].unwrap_err().reason == "notifier rejected message"
        assert results[2].unwrap_err().reason == "email gateway down"
        assert len(notifier.sent) == 3

    async def test_no_channels_sends_nothing(self) -> None:
        notifier = RecordingNotifier()
        assert await NotificationDispatcher(notifier).deliver("user-1", (), MESSAGE) == []
        assert notifier.sent == []

    async def test_logging_notifier_accepts_everything(self) -> None:
        results = await NotificationDispatcher(LoggingNotifier()).deliver(
            "user-1", [Channel.PHONE_CALL], MESSAGE
        )
        assert results[0].is_ok()


class TestAuditTrail:
    async def test_history_is_bounded(self) -> None:
        trail = AuditTrail(max_events=2)
        for i in range(3):
            await trail.record("alert_created", "user-1", f"alert-{i}")

        assert [e.alert_id for e in trail.events()] == ["alert-1", "alert-2"]

    async def test_filters_by_kind_and_alert(self) -> None:
        trail = AuditTrail()
        await trail.record("alert_created", "user-1", "a")
        await trail.record("alert_closed", "user-1", "a", status="resolved")
        await trail.record("alert_created", "user-1", "b")

        assert len(trail.events("alert_created")) == 2
        closed = trail.events("alert_closed", "a")
        assert closed[0].detail == {"status": "resolved"}

    async def test_subscribers_receive_events_and_failures_are_contained(self) -> None:
        trail = AuditTrail()
        seen: list[AuditEvent] = []
        async_seen: list[str] = []

        def broken(event: AuditEvent) -> None:
            raise RuntimeError("subscriber bug")

        async def async_subscriber(event: AuditEvent) -> None:
            async_seen.append(event.kind)

        trail.subscribe(seen.append)
        trail.subscribe(broken)
        trail.subscribe(async_subscriber)

        event = await trail.record("escalation_fired", "user-1", "a", attempt=1)

        assert seen == [event]
        assert async_seen == ["escalation_fired"]
