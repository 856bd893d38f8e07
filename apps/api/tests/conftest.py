"""
Shared fixtures: a controllable clock and an in-memory Redis stand-in.
"""

from datetime import UTC, datetime, timedelta

import pytest

T0 = datetime(2026, 10, 19, 8, 0, 0, tzinfo=UTC)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)

    def set(self, value: datetime) -> None:
        self.now = value


class FakeRedis:
    """
    The subset of redis.asyncio.Redis used by the revocation store.

    Keys expire according to the shared FakeClock, so tests can observe TTL
    eviction without sleeping.
    """

    def __init__(self, clock: FakeClock):
        self._clock = clock
        self._data: dict[str, tuple[str, datetime | None]] = {}
        self.set_calls: list[tuple[str, str, int | None]] = []

    def _live(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        expires_at = self._clock() + timedelta(seconds=ex) if ex is not None else None
        self._data[key] = (value, expires_at)
        self.set_calls.append((key, value, ex))
        return True

    async def get(self, key: str) -> str | None:
        return self._live(key)

    async def exists(self, *keys: str) -> int:
        return sum(1 for key in keys if self._live(key) is not None)

    async def ttl(self, key: str) -> int:
        if self._live(key) is None:
            return -2
        _value, expires_at = self._data[key]
        if expires_at is None:
            return -1
        return int((expires_at - self._clock()).total_seconds())

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None


@pytest.fixture
def clock():
    """Clock fixed at T0."""
    return FakeClock()


@pytest.fixture
def fake_redis(clock):
    """In-memory Redis sharing the test clock."""
    return FakeRedis(clock)
