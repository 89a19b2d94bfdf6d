"""Shared fixtures: manual clock, in-memory store, fast-retry settings."""

import pytest

from distsync.config.settings import AppSettings
from distsync.core.exceptions import StoreUnavailableError
from distsync.infrastructure.cache.memory_store import InMemoryStore


class FakeClock:
    """Monotonic clock advanced by hand so TTL expiry is deterministic."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingStore:
    """Store that raises on every call (simulated Redis outage). Counts calls."""

    def __init__(self) -> None:
        self.calls = 0

    def _fail(self):
        self.calls += 1
        raise StoreUnavailableError("Store unavailable: Redis connection refused")

    async def get(self, key, model=None):
        self._fail()

    async def set(self, key, value, ttl=None):
        self._fail()

    async def delete(self, key):
        self._fail()

    async def exists(self, key):
        self._fail()

    async def run_script(self, script, keys, args=()):
        self._fail()

    async def ping(self):
        return False

    async def close(self):
        return None


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryStore(clock=clock)


@pytest.fixture
def failing_store():
    return FailingStore()


@pytest.fixture
def fast_settings():
    """Defaults from the config layer, but with a 1 ms retry delay so tests stay quick."""
    return AppSettings(lock_retry_delay_ms=1, lock_max_retries=3)
