"""Fixed-window rate limiter over the shared store. Fail-closed: store outage means deny."""

import logging
import math
from dataclasses import dataclass
from typing import Iterator

from distsync.config.settings import AppSettings
from distsync.core.exceptions import StoreUnavailableError
from distsync.infrastructure.cache import scripts
from distsync.infrastructure.cache.base import CoordinationStore, ttl_to_ms
from distsync.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)

RATE_LIMIT_PREFIX = "rate_limit:"


@dataclass(frozen=True)
class RateLimitResult:
    """
    Outcome of one check.

    Attributes:
        count: Requests seen in the current window, including this one (0 when degraded).
        allowed: Whether the request may proceed.
        limit: Max requests per window.
        remaining: Requests left in the window (0 when denied).
        retry_after_seconds: Seconds until the window resets when denied; None when allowed.
        degraded: True when the store was unreachable and the request was denied fail-closed.
    """

    count: int
    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: int | None = None
    degraded: bool = False

    def __iter__(self) -> Iterator[int | bool]:
        # Unpacks as (count, allowed).
        yield self.count
        yield self.allowed


@dataclass(frozen=True)
class RateLimitPolicy:
    """Named budget; the name namespaces the identifier (e.g. auth:10.0.0.1)."""

    name: str
    max_requests: int
    window_seconds: int

    @classmethod
    def general(cls, settings: AppSettings) -> "RateLimitPolicy":
        return cls("general", settings.rate_limit_requests, settings.rate_limit_window_seconds)

    @classmethod
    def auth(cls, settings: AppSettings) -> "RateLimitPolicy":
        return cls("auth", settings.rate_limit_auth_requests, settings.rate_limit_auth_window_seconds)


class RateLimiter:
    """
    Per-identifier fixed window. The increment and the window TTL are set by one
    script, so concurrent first requests share a single counter that always expires.
    """

    def __init__(
        self,
        store: CoordinationStore,
        key_prefix: str = RATE_LIMIT_PREFIX,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._store = store
        self._prefix = key_prefix
        self._metrics = metrics

    def _key(self, identifier: str) -> str:
        return f"{self._prefix}{identifier}"

    def _count(self, name: str, identifier: str) -> None:
        if self._metrics is not None:
            self._metrics.increment(name, identifier=identifier)

    @staticmethod
    def _fail_closed(max_requests: int, window_seconds: int) -> RateLimitResult:
        return RateLimitResult(
            count=0,
            allowed=False,
            limit=max_requests,
            remaining=0,
            retry_after_seconds=window_seconds,
            degraded=True,
        )

    async def check(self, identifier: str, max_requests: int, window_seconds: int) -> RateLimitResult:
        """
        Count this request against the window. allowed iff count <= max_requests.
        Never raises for store failures: they produce a denied, degraded result.
        """
        if max_requests < 1:
            raise ValueError(f"max_requests must be >= 1, got {max_requests}")
        window_ms = ttl_to_ms(window_seconds)
        try:
            count, pttl_ms = await self._store.run_script(
                scripts.RATE_LIMIT_INCREMENT,
                keys=[self._key(identifier)],
                args=[window_ms],
            )
            count, pttl_ms = int(count), int(pttl_ms)
        except StoreUnavailableError as e:
            # SECURITY: fail closed so a store outage cannot be used to bypass the limit.
            logger.error(
                "rate_limit_check_failed",
                extra={"identifier": identifier, "error": e.message},
            )
            self._count("rate_limit_store_unavailable", identifier)
            return self._fail_closed(max_requests, window_seconds)
        except Exception as e:
            logger.error(
                "rate_limit_check_failed",
                extra={"identifier": identifier, "error": str(e)},
                exc_info=True,
            )
            self._count("rate_limit_store_unavailable", identifier)
            return self._fail_closed(max_requests, window_seconds)

        allowed = count <= max_requests
        if allowed:
            return RateLimitResult(
                count=count,
                allowed=True,
                limit=max_requests,
                remaining=max_requests - count,
            )

        retry_after = math.ceil(pttl_ms / 1000) if pttl_ms > 0 else window_seconds
        logger.warning(
            "rate_limit_exceeded",
            extra={"identifier": identifier, "count": count, "limit": max_requests},
        )
        self._count("rate_limit_exceeded", identifier)
        return RateLimitResult(
            count=count,
            allowed=False,
            limit=max_requests,
            remaining=0,
            retry_after_seconds=retry_after,
        )

    async def check_policy(self, policy: RateLimitPolicy, client_id: str) -> RateLimitResult:
        return await self.check(f"{policy.name}:{client_id}", policy.max_requests, policy.window_seconds)

    async def remaining(self, identifier: str, max_requests: int) -> int:
        """Slots left in the current window without counting a request. Raises on store outage."""
        count = await self._store.get(self._key(identifier))
        return max(0, max_requests - int(count or 0))

    async def reset(self, identifier: str) -> None:
        """Drop the window counter so the next request starts a fresh window."""
        await self._store.delete(self._key(identifier))
