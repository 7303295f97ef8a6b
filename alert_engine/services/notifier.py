"""
Notification delivery boundary.

Key patterns:
- Protocol-based dependency injection for the external notifier
- Result type for expected failures (a channel being down is not exceptional)
- Structured concurrency with asyncio.TaskGroup when fanning out to channels
"""

import asyncio
from typing import Generic, Protocol, TypeVar

from alert_engine.domain.errors import NotifierFailure
from alert_engine.domain.models import Channel, NotificationMessage
from alert_engine.observability import logger

ValueT = TypeVar("ValueT")
ErrorT = TypeVar("ErrorT", bound=BaseException)


class Result(Generic[ValueT, ErrorT]):
    """
    Explicit error handling without exceptions for expected failures.

    Why: Makes error paths visible in type system, forces handling decisions.
    When to use: When failure is expected business logic, not exceptional.
    """

    def __init__(self, value: ValueT | None = None, error: ErrorT | None = None) -> None:
        if value is not None and error is not None:
            raise ValueError("Result cannot have both value and error")
        if value is None and error is None:
            raise ValueError("Result must have either value or error")
        self._value: ValueT | None = value
        self._error: ErrorT | None = error

    @classmethod
    def ok(cls, value: ValueT) -> "Result[ValueT, ErrorT]":
        return cls(value=value)

    @classmethod
    def err(cls, error: ErrorT) -> "Result[ValueT, ErrorT]":
        return cls(error=error)

    def is_ok(self) -> bool:
        return self._error is None

    def is_err(self) -> bool:
        return self._error is not None

    def unwrap(self) -> ValueT:
        if self._error:
            raise self._error
        return self._value  # type: ignore

    def unwrap_or(self, default: ValueT) -> ValueT:
        return self._value if self._error is None else default  # type: ignore

    def unwrap_err(self) -> ErrorT:
        if self._error is None:
            raise ValueError("Called unwrap_err() on an Ok value")
        return self._error


Delivery = Result[Channel, NotifierFailure]


class Notifier(Protocol):
    """
    External push/SMS/email/voice gateway.

    Returns True when the message was accepted. May also raise; the
    dispatcher treats both a False return and an exception as a failure.
    """

    async def send(self, user_id: str, channel: Channel, message: NotificationMessage) -> bool: ...


class LoggingNotifier:
    """Development notifier that writes every delivery to the structured log."""

    def __init__(self) -> None:
        self.logger = logger.bind(component="logging_notifier")

    async def send(self, user_id: str, channel: Channel, message: NotificationMessage) -> bool:
        self.logger.info(
            "notification_delivered",
            user_id=user_id,
            channel=channel.value,
            kind=message.kind,
            severity=message.severity.value,
            alert_id=message.alert_id,
            recipient=message.recipient.name if message.recipient else None,
            text=message.text,
        )
        return True


class NotificationDispatcher:
    """
    Fans a message out to channels and reports one Result per channel.

    Failures are logged and returned, never raised, and never retried here;
    escalation is the only retry mechanism.
    """

    def __init__(self, notifier: Notifier) -> None:
        self.notifier = notifier
        self.logger = logger.bind(component="notification_dispatcher")

    async def _deliver_one(
        self, user_id: str, channel: Channel, message: NotificationMessage
    ) -> Delivery:
        try:
            accepted = await self.notifier.send(user_id, channel, message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            failure = NotifierFailure(channel.value, str(e) or type(e).__name__)
        else:
            if accepted:
                return Result.ok(channel)
            failure = NotifierFailure(channel.value, "notifier rejected message")

        self.logger.warning(
            "notification_failed",
            user_id=user_id,
            channel=channel.value,
            alert_id=message.alert_id,
            reason=failure.reason,
        )
        return Result.err(failure)

    async def deliver(
        self, user_id: str, channels: tuple[Channel, ...] | list[Channel], message: NotificationMessage
    ) -> list[Delivery]:
        """Deliver concurrently; results come back in channel order."""
        if not channels:
            return []

        async with asyncio.TaskGroup() as task_group:
            tasks = [
                task_group.create_task(self._deliver_one(user_id, channel, message))
                for channel in channels
            ]

        results = [task.result() for task in tasks]
        self.logger.info(
            "notification_dispatched",
            user_id=user_id,
            alert_id=message.alert_id,
            kind=message.kind,
            delivered=[r.unwrap().value for r in results if r.is_ok()],
            failed=len([r for r in results if r.is_err()]),
        )
        return results
