"""Lua scripts executed by a Lua-capable Redis engine through RedisClient."""

import asyncio

import fakeredis
import pytest

from distsync.config.settings import AppSettings
from distsync.coordination.distributed_lock import DistributedLock
from distsync.coordination.rate_limiter import RateLimiter
from distsync.coordination.semaphore import DistributedSemaphore
from distsync.infrastructure.cache.redis_client import RedisClient


@pytest.fixture
async def redis_store():
    fake = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    client = RedisClient(client=fake, settings=AppSettings())
    yield client
    await client.close()


@pytest.fixture
def lock(redis_store, fast_settings):
    return DistributedLock(redis_store, settings=fast_settings)


@pytest.fixture
def semaphore(redis_store, fast_settings):
    return DistributedSemaphore(redis_store, settings=fast_settings)


@pytest.mark.asyncio
async def test_lock_has_at_most_one_holder(lock, redis_store):
    guards = await asyncio.gather(*(lock.try_acquire("job", ttl=30) for _ in range(10)))
    held = [g for g in guards if g is not None]
    assert len(held) == 1
    assert await redis_store.client.get("lock:job") == held[0].token
    assert 0 < await redis_store.client.pttl("lock:job") <= 30_000


@pytest.mark.asyncio
async def test_lock_stale_token_cannot_release_or_extend(lock, redis_store):
    first = await lock.try_acquire("job", ttl=30)
    # Lease lost: key gone as if its TTL ran out, then taken by someone else.
    await redis_store.delete("lock:job")
    second = await lock.try_acquire("job", ttl=30)
    assert second is not None

    assert await first.extend() is False
    assert await first.release() is False
    assert await redis_store.client.get("lock:job") == second.token

    assert await second.extend(60) is True
    assert await redis_store.client.pttl("lock:job") > 30_000
    assert await second.release() is True
    assert await lock.is_locked("job") is False


@pytest.mark.asyncio
async def test_semaphore_grants_two_of_three(semaphore, redis_store):
    permits = await asyncio.gather(
        *(semaphore.try_acquire("uploads", max_permits=2, ttl=30) for _ in range(3))
    )
    granted = [p for p in permits if p is not None]
    assert len(granted) == 2
    assert await semaphore.count("uploads") == 2
    assert await redis_store.client.pttl("semaphore:uploads") > 0

    assert await granted[0].release() is True
    assert await semaphore.count("uploads") == 1
    assert await semaphore.try_acquire("uploads", max_permits=2, ttl=30) is not None


@pytest.mark.asyncio
async def test_semaphore_stale_permit_cannot_release_or_extend(semaphore, redis_store):
    permit = await semaphore.try_acquire("uploads", max_permits=1, ttl=30)
    await redis_store.delete("semaphore:uploads")
    other = await semaphore.try_acquire("uploads", max_permits=1, ttl=30)
    assert other is not None

    assert await permit.extend() is False
    assert await permit.release() is False
    assert await semaphore.count("uploads") == 1
    assert await other.extend() is True
    assert await other.release() is True
    assert await semaphore.count("uploads") == 0


@pytest.mark.asyncio
async def test_rate_limit_tenth_allowed_eleventh_denied(redis_store):
    limiter = RateLimiter(redis_store)
    for i in range(1, 11):
        result = await limiter.check("client-1", max_requests=10, window_seconds=60)
        assert (result.count, result.allowed) == (i, True)

    over = await limiter.check("client-1", max_requests=10, window_seconds=60)
    assert (over.count, over.allowed) == (11, False)
    assert 0 < over.retry_after_seconds <= 60
    assert await limiter.remaining("client-1", max_requests=10) == 0

    await limiter.reset("client-1")
    assert (await limiter.check("client-1", max_requests=10, window_seconds=60)).count == 1


@pytest.mark.asyncio
async def test_rate_limit_counter_without_ttl_gets_window(redis_store):
    await redis_store.client.set("rate_limit:client-2", "5")
    result = await RateLimiter(redis_store).check("client-2", max_requests=10, window_seconds=60)
    assert result.count == 6
    assert 0 < await redis_store.client.pttl("rate_limit:client-2") <= 60_000
