"""Shared test doubles for the cache-aside tests."""

import pytest

from cache_aside import AuthoritativeStore, InMemoryCacheBackend, KeyCodec, NotFound


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingStore(AuthoritativeStore):
    """Dict-backed store that counts fetches and can be held open with a gate."""

    def __init__(self, values=None, gate=None, error=None):
        self.values = dict(values or {})
        self.gate = gate
        self.error = error
        self.calls = 0

    async def fetch(self, identity):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if identity not in self.values:
            raise NotFound(f"{identity!r} not found")
        return self.values[identity]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return InMemoryCacheBackend(clock=clock)


@pytest.fixture
def codec():
    return KeyCodec()
