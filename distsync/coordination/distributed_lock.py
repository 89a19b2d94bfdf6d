"""Redis-based distributed locking. SET NX PX, token-checked release/extend, bounded retry."""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

from distsync.config.settings import AppSettings, get_settings
from distsync.coordination.lease import Lease
from distsync.coordination.retry import retry_acquire
from distsync.core.exceptions import LockAcquisitionTimeoutError
from distsync.infrastructure.cache import scripts
from distsync.infrastructure.cache.base import CoordinationStore, Ttl, ttl_to_ms
from distsync.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)

LOCK_PREFIX = "lock:"


class LockGuard(Lease):
    """Held distributed lock. Use as `async with` or call release() explicitly."""


class DistributedLock:
    """
    Single-holder mutual exclusion over a shared store. A unique token per attempt
    means only the holder can release or extend. Every lease carries a TTL, so a
    crashed holder's lock is reclaimed by the store; long critical sections must
    call extend() before the TTL runs out.
    """

    def __init__(
        self,
        store: CoordinationStore,
        settings: AppSettings | None = None,
        key_prefix: str = LOCK_PREFIX,
        metrics: MetricsCollector | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._store = store
        self._prefix = key_prefix
        self._metrics = metrics
        self._default_ttl = settings.lock_ttl_seconds
        self._default_retries = settings.lock_max_retries
        self._default_delay = settings.lock_retry_delay_seconds

    def _key(self, resource: str) -> str:
        return f"{self._prefix}{resource}"

    def _count(self, name: str, resource: str) -> None:
        if self._metrics is not None:
            self._metrics.increment(name, resource=resource)

    async def try_acquire(self, resource: str, ttl: Ttl | None = None) -> LockGuard | None:
        """One atomic attempt. Returns a guard, or None if another token holds the lock."""
        ttl = self._default_ttl if ttl is None else ttl
        key = self._key(resource)
        token = uuid.uuid4().hex
        acquired = await self._store.run_script(
            scripts.LOCK_ACQUIRE, keys=[key], args=[token, ttl_to_ms(ttl)]
        )
        if not int(acquired):
            return None
        logger.debug("lock_acquired", extra={"resource": resource, "token": token, "ttl": ttl})
        self._count("lock_acquired", resource)
        return LockGuard(self, resource=resource, key=key, token=token, ttl=ttl)

    async def acquire(
        self,
        resource: str,
        ttl: Ttl | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
    ) -> LockGuard:
        """
        Retry try_acquire up to max_retries times after the first attempt, waiting
        retry_delay seconds between attempts. Raises LockAcquisitionTimeoutError when
        the budget is spent; StoreUnavailableError propagates without retrying.
        """
        guard, attempts = await retry_acquire(
            lambda: self.try_acquire(resource, ttl),
            max_retries=self._default_retries if max_retries is None else max_retries,
            retry_delay=self._default_delay if retry_delay is None else retry_delay,
        )
        if guard is None:
            logger.warning("lock_acquire_timeout", extra={"resource": resource, "attempts": attempts})
            self._count("lock_acquire_timeout", resource)
            raise LockAcquisitionTimeoutError(
                f"Failed to acquire lock for resource: {resource}",
                resource=resource,
                attempts=attempts,
            )
        return guard

    @asynccontextmanager
    async def hold(
        self,
        resource: str,
        ttl: Ttl | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
    ) -> AsyncIterator[LockGuard]:
        """Acquire (blocking with retries), yield the guard, release on every exit path."""
        guard = await self.acquire(resource, ttl, max_retries, retry_delay)
        async with guard:
            yield guard

    async def release(self, guard: LockGuard) -> bool:
        return await guard.release()

    async def extend(self, guard: LockGuard, ttl: Ttl | None = None) -> bool:
        return await guard.extend(ttl)

    async def is_locked(self, resource: str) -> bool:
        """Advisory only: the answer may be stale by the time the caller acts on it."""
        return await self._store.exists(self._key(resource))

    async def _release_lease(self, lease: Lease) -> bool:
        released = await self._store.run_script(
            scripts.LOCK_RELEASE, keys=[lease.key], args=[lease.token]
        )
        if int(released):
            logger.debug("lock_released", extra={"resource": lease.resource, "token": lease.token})
            return True
        logger.info("lock_lease_lost", extra=lease.log_context())
        self._count("lock_lease_lost", lease.resource)
        return False

    async def _extend_lease(self, lease: Lease, ttl: Ttl) -> bool:
        extended = await self._store.run_script(
            scripts.LOCK_EXTEND, keys=[lease.key], args=[lease.token, ttl_to_ms(ttl)]
        )
        if int(extended):
            logger.debug("lock_extended", extra={"resource": lease.resource, "ttl": ttl})
            return True
        logger.info("lock_lease_lost", extra=lease.log_context())
        self._count("lock_lease_lost", lease.resource)
        return False
