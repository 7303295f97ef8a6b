"""
Shared test doubles for the alert engine.

- RecordingNotifier: implements the Notifier protocol and remembers every send
- FailingStore: a RecordStore whose backend is down
- VirtualClock: drives escalation timers without real waiting
"""

from __future__ import annotations

import asyncio
import heapq
from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from alert_engine.config import AlertingConfig, AppConfig
from alert_engine.domain.models import Channel, NotificationMessage
from alert_engine.services.engine import AlertEngine

START = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


class RecordingNotifier:
    """Test double that implements the Notifier protocol."""

    def __init__(
        self,
        failing_channels: set[Channel] | None = None,
        raise_on: set[Channel] | None = None,
    ) -> None:
        self.failing_channels = failing_channels or set()
        self.raise_on = raise_on or set()
        self.sent: list[tuple[str, Channel, NotificationMessage]] = []
        self.gate: asyncio.Event | None = None
        self.gate_kind = "escalation"

    async def send(self, user_id: str, channel: Channel, message: NotificationMessage) -> bool:
        self.sent.append((user_id, channel, message))
        if self.gate is not None and message.kind == self.gate_kind:
            await self.gate.wait()
        if channel in self.raise_on:
            raise ConnectionError(f"{channel.value} gateway down")
        return channel not in self.failing_channels

    def of_kind(self, kind: str) -> list[tuple[str, Channel, NotificationMessage]]:
        return [s for s in self.sent if s[2].kind == kind]


class FailingStore:
    """RecordStore whose backend is unreachable."""

    def __init__(self) -> None:
        self.calls = 0

    def _fail(self) -> None:
        self.calls += 1
        raise ConnectionError("database unreachable")

    async def find_one(self, key: str) -> Any:
        self._fail()

    async def upsert(self, key: str, value: Any) -> Any:
        self._fail()

    async def find(self, filter: Any = None, sort: Any = None, limit: Any = None) -> list[Any]:
        self._fail()
        return []

    async def delete_many(self, filter: Any) -> int:
        self._fail()
        return 0

    async def count_documents(self, filter: Any = None) -> int:
        self._fail()
        return 0


class VirtualClock:
    """
    Deterministic time source.

    `sleep` parks the caller until `advance` moves virtual time past its
    deadline; `now` reports the matching wall-clock datetime.
    """

    def __init__(self, start: datetime = START) -> None:
        self.start = start
        self.elapsed = 0.0
        self._waiters: list[tuple[float, int, asyncio.Future[None]]] = []
        self._seq = 0

    def now(self) -> datetime:
        return self.start + timedelta(seconds=self.elapsed)

    async def sleep(self, seconds: float) -> None:
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        heapq.heappush(self._waiters, (self.elapsed + seconds, self._seq, future))
        self._seq += 1
        await future

    async def advance(self, seconds: float) -> None:
        target = self.elapsed + seconds
        await settle()
        while self._waiters and self._waiters[0][0] <= target:
            deadline, _, future = heapq.heappop(self._waiters)
            self.elapsed = max(self.elapsed, deadline)
            if not future.done():
                future.set_result(None)
            await settle()
        self.elapsed = target

    async def advance_minutes(self, minutes: float) -> None:
        await self.advance(minutes * 60)

    @property
    def sleepers(self) -> int:
        return sum(1 for _, _, f in self._waiters if not f.done())


async def settle(rounds: int = 50) -> None:
    """Let every runnable task make progress."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(alerting=AlertingConfig(timezone="UTC"))


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
async def engine(
    config: AppConfig, clock: VirtualClock, notifier: RecordingNotifier
) -> AsyncIterator[AlertEngine]:
    """Engine wired to in-memory stores, a recording notifier and virtual time."""
    engine = AlertEngine(config, notifier=notifier, clock=clock.now, sleep=clock.sleep)
    yield engine
    await engine.stop()


def vitals_payload(
    user_id: str = "user-1",
    temperature: float = 36.8,
    heart_rate: float = 85,
    spo2: float = 97,
    timestamp: datetime = START,
) -> dict[str, Any]:
    """Ingestion payload in the camelCase shape the devices send."""
    return {
        "userId": user_id,
        "userEmail": f"{user_id}@example.com",
        "sensorData": {
            "timestamp": timestamp.isoformat(),
            "temperature": temperature,
            "humidity": 55.0,
            "heartRate": heart_rate,
            "spO2": spo2,
        },
    }


@pytest.fixture
def make_vitals():
    return vitals_payload
