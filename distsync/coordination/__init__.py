"""Coordination layer: distributed lock, counting semaphore, fixed-window rate limiter. No FastAPI."""

from distsync.coordination.distributed_lock import DistributedLock, LockGuard
from distsync.coordination.lease import Lease
from distsync.coordination.rate_limiter import RateLimitPolicy, RateLimitResult, RateLimiter
from distsync.coordination.semaphore import DistributedSemaphore, SemaphorePermit

__all__ = [
    "DistributedLock",
    "DistributedSemaphore",
    "Lease",
    "LockGuard",
    "RateLimitPolicy",
    "RateLimitResult",
    "RateLimiter",
    "SemaphorePermit",
]
