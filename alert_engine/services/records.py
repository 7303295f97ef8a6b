"""
Record store boundary and per-record locking.

The engine never owns durable storage. It talks to a `RecordStore` with five
operations and serializes mutations per record key with `KeyedLocks`.
`InMemoryRecordStore` is the reference adapter used by tests and the demo.
"""

import asyncio
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any, Generic, Protocol, TypeVar

from pydantic import BaseModel

from alert_engine.domain.errors import StoreUnavailable
from alert_engine.observability import logger

RecordT = TypeVar("RecordT", bound=BaseModel)

Filter = Mapping[str, Any]
Sort = Sequence[tuple[str, int]]


class RecordStore(Protocol[RecordT]):
    """
    Protocol every persistence adapter implements.

    Filters are Mongo-style mappings over dotted attribute paths. Values are
    compared for equality unless given as an operator mapping such as
    {"created_at": {"$lt": cutoff}}. Adapters raise StoreUnavailable when the
    backend fails.
    """

    async def find_one(self, key: str) -> RecordT | None: ...

    async def upsert(self, key: str, value: RecordT) -> RecordT: ...

    async def find(
        self, filter: Filter | None = None, sort: Sort | None = None, limit: int | None = None
    ) -> list[RecordT]: ...

    async def delete_many(self, filter: Filter) -> int: ...

    async def count_documents(self, filter: Filter | None = None) -> int: ...


def _resolve(record: BaseModel, path: str) -> Any:
    value: Any = record
    for part in path.split("."):
        if value is None:
            return None
        value = value.get(part) if isinstance(value, Mapping) else getattr(value, part, None)
    return value


_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "$lt": lambda a, b: a is not None and a < b,
    "$lte": lambda a, b: a is not None and a <= b,
    "$gt": lambda a, b: a is not None and a > b,
    "$gte": lambda a, b: a is not None and a >= b,
    "$ne": lambda a, b: a != b,
    "$in": lambda a, b: a in b,
}


def matches(record: BaseModel, filter: Filter | None) -> bool:
    """Evaluate a Mongo-style filter against a model."""
    for path, expected in (filter or {}).items():
        actual = _resolve(record, path)
        if isinstance(expected, Mapping):
            for op, operand in expected.items():
                if op not in _OPERATORS:
                    raise ValueError(f"Unsupported filter operator: {op}")
                if not _OPERATORS[op](actual, operand):
                    return False
        elif actual != expected:
            return False
    return True


class InMemoryRecordStore(Generic[RecordT]):
    """Dict-backed store holding deep copies so callers cannot mutate stored state."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._records: dict[str, RecordT] = {}
        self.logger = logger.bind(component="record_store", store=name)

    async def find_one(self, key: str) -> RecordT | None:
        record = self._records.get(key)
        return record.model_copy(deep=True) if record is not None else None

    async def upsert(self, key: str, value: RecordT) -> RecordT:
        self._records[key] = value.model_copy(deep=True)
        return value

    async def find(
        self, filter: Filter | None = None, sort: Sort | None = None, limit: int | None = None
    ) -> list[RecordT]:
        found = [r for r in self._records.values() if matches(r, filter)]
        # Apply sort keys last-to-first so the first key dominates
        for path, direction in reversed(list(sort or [])):
            found.sort(key=lambda r, p=path: _resolve(r, p), reverse=direction < 0)
        if limit is not None:
            found = found[:limit]
        return [r.model_copy(deep=True) for r in found]

    async def delete_many(self, filter: Filter) -> int:
        doomed = [k for k, r in self._records.items() if matches(r, filter)]
        for key in doomed:
            del self._records[key]
        if doomed:
            self.logger.debug("records_deleted", count=len(doomed))
        return len(doomed)

    async def count_documents(self, filter: Filter | None = None) -> int:
        return sum(1 for r in self._records.values() if matches(r, filter))


class KeyedLocks:
    """
    One asyncio.Lock per record key, created on demand.

    Locks are reference counted and dropped once no task holds or waits on
    them, so the registry only ever contains keys that are in use.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


async def guarded(operation: str, call: Any) -> Any:
    """Await a store call, translating backend failures into StoreUnavailable."""
    try:
        return await call
    except StoreUnavailable:
        raise
    except Exception as e:
        raise StoreUnavailable(f"{operation} failed: {e}") from e
