"""Redis-based counting semaphore. Holder set per resource; size check and add in one script."""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

from distsync.config.settings import AppSettings, get_settings
from distsync.coordination.lease import Lease
from distsync.coordination.retry import retry_acquire
from distsync.core.exceptions import SemaphoreAcquisitionTimeoutError
from distsync.infrastructure.cache import scripts
from distsync.infrastructure.cache.base import CoordinationStore, Ttl, ttl_to_ms
from distsync.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)

SEMAPHORE_PREFIX = "semaphore:"


class SemaphorePermit(Lease):
    """One held permit. Use as `async with` or call release() explicitly."""


class DistributedSemaphore:
    """
    At most max_permits concurrent holders per resource across all processes.

    The holder set has a single TTL, refreshed on every acquire and extend. When it
    lapses every permit for the resource is reclaimed at once, so the TTL must cover
    the slowest expected holder.
    """

    def __init__(
        self,
        store: CoordinationStore,
        settings: AppSettings | None = None,
        key_prefix: str = SEMAPHORE_PREFIX,
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

    async def try_acquire(
        self,
        resource: str,
        max_permits: int,
        ttl: Ttl | None = None,
    ) -> SemaphorePermit | None:
        """One atomic attempt. Returns a permit, or None when all permits are taken."""
        if max_permits < 1:
            raise ValueError(f"max_permits must be >= 1, got {max_permits}")
        ttl = self._default_ttl if ttl is None else ttl
        key = self._key(resource)
        token = uuid.uuid4().hex
        holders = int(
            await self._store.run_script(
                scripts.SEMAPHORE_ACQUIRE,
                keys=[key],
                args=[max_permits, token, ttl_to_ms(ttl)],
            )
        )
        if holders <= 0:
            return None
        logger.debug(
            "semaphore_permit_acquired",
            extra={"resource": resource, "token": token, "current": holders, "max": max_permits},
        )
        self._count("semaphore_acquired", resource)
        return SemaphorePermit(self, resource=resource, key=key, token=token, ttl=ttl)

    async def acquire(
        self,
        resource: str,
        max_permits: int,
        ttl: Ttl | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
    ) -> SemaphorePermit:
        """Same retry shape as DistributedLock.acquire; raises SemaphoreAcquisitionTimeoutError."""
        permit, attempts = await retry_acquire(
            lambda: self.try_acquire(resource, max_permits, ttl),
            max_retries=self._default_retries if max_retries is None else max_retries,
            retry_delay=self._default_delay if retry_delay is None else retry_delay,
        )
        if permit is None:
            logger.warning(
                "semaphore_acquire_timeout",
                extra={"resource": resource, "attempts": attempts, "max": max_permits},
            )
            self._count("semaphore_acquire_timeout", resource)
            raise SemaphoreAcquisitionTimeoutError(
                f"Failed to acquire semaphore permit for resource: {resource}",
                resource=resource,
                attempts=attempts,
            )
        return permit

    @asynccontextmanager
    async def hold(
        self,
        resource: str,
        max_permits: int,
        ttl: Ttl | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
    ) -> AsyncIterator[SemaphorePermit]:
        permit = await self.acquire(resource, max_permits, ttl, max_retries, retry_delay)
        async with permit:
            yield permit

    async def release(self, permit: SemaphorePermit) -> bool:
        return await permit.release()

    async def extend(self, permit: SemaphorePermit, ttl: Ttl | None = None) -> bool:
        """Refresh the holder set's TTL. This extends every holder of the resource, not just this one."""
        return await permit.extend(ttl)

    async def count(self, resource: str) -> int:
        return int(await self._store.run_script(scripts.SEMAPHORE_COUNT, keys=[self._key(resource)]))

    async def _release_lease(self, lease: Lease) -> bool:
        removed = await self._store.run_script(
            scripts.SEMAPHORE_RELEASE, keys=[lease.key], args=[lease.token]
        )
        if int(removed):
            logger.debug("semaphore_permit_released", extra={"resource": lease.resource, "token": lease.token})
            return True
        logger.info("semaphore_lease_lost", extra=lease.log_context())
        self._count("semaphore_lease_lost", lease.resource)
        return False

    async def _extend_lease(self, lease: Lease, ttl: Ttl) -> bool:
        extended = await self._store.run_script(
            scripts.SEMAPHORE_EXTEND, keys=[lease.key], args=[lease.token, ttl_to_ms(ttl)]
        )
        if int(extended):
            return True
        logger.info("semaphore_lease_lost", extra=lease.log_context())
        self._count("semaphore_lease_lost", lease.resource)
        return False
