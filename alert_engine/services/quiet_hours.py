"""Quiet-hours window membership, including windows that wrap past midnight."""

from datetime import UTC, datetime, time
from zoneinfo import ZoneInfo

from alert_engine.domain.models import QuietHours


def in_window(start: time, end: time, now: time) -> bool:
    """
    Half-open membership test on a daily clock.

    start >= end wraps midnight: inside when now >= start or now < end.
    Otherwise inside when start <= now < end. Equal start and end therefore
    covers the whole day.
    """
    if start >= end:
        return now >= start or now < end
    return start <= now < end


def is_quiet(window: QuietHours, now: time) -> bool:
    """Disabled windows never suppress anything."""
    return window.enabled and in_window(window.start_time, window.end_time, now)


def local_time(zone: ZoneInfo, at: datetime | None = None) -> time:
    """Wall-clock time of day in the target zone, seconds dropped."""
    at = at or datetime.now(UTC)
    local = at.astimezone(zone)
    return time(local.hour, local.minute)
