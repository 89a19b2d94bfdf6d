"""FastAPI dependency injection: store client and the coordination primitives built on it."""

from typing import Annotated

from fastapi import Depends

from distsync.config.settings import get_settings
from distsync.coordination import DistributedLock, DistributedSemaphore, RateLimiter
from distsync.infrastructure.cache.base import CoordinationStore
from distsync.infrastructure.cache.redis_client import RedisClient
from distsync.observability.metrics import MetricsCollector

_store: CoordinationStore | None = None
_metrics = MetricsCollector()


def get_store() -> CoordinationStore:
    """Return singleton Redis client."""
    global _store
    if _store is None:
        _store = RedisClient(settings=get_settings())
    return _store


def get_metrics() -> MetricsCollector | None:
    return _metrics if get_settings().enable_metrics else None


def get_rate_limiter(
    store: Annotated[CoordinationStore, Depends(get_store)],
) -> RateLimiter:
    return RateLimiter(store, metrics=get_metrics())


def get_lock(
    store: Annotated[CoordinationStore, Depends(get_store)],
) -> DistributedLock:
    return DistributedLock(store, settings=get_settings(), metrics=get_metrics())


def get_semaphore(
    store: Annotated[CoordinationStore, Depends(get_store)],
) -> DistributedSemaphore:
    return DistributedSemaphore(store, settings=get_settings(), metrics=get_metrics())
