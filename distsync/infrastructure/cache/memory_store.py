"""In-memory CoordinationStore for tests and single-process use. Same scripts, same TTL semantics."""

import asyncio
import time
from typing import Any, Callable, Sequence

from pydantic import BaseModel

from distsync.core.exceptions import StoreUnavailableError
from distsync.infrastructure.cache import scripts, serialization
from distsync.infrastructure.cache.base import StoreScript, Ttl, ttl_to_ms


class InMemoryStore:
    """
    Dict-backed store with per-key expiry. Every operation runs under one asyncio.Lock,
    so a script is atomic relative to all other scripts and single-key operations,
    matching Redis. The clock is injectable so tests can expire leases without sleeping.

    Expired keys are dropped when read, and writes sweep every expired key at most
    once per `sweep_interval` seconds.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        default_ttl: Ttl = 3600,
        sweep_interval: float = 60.0,
    ) -> None:
        self._clock = clock
        self._default_ttl = default_ttl
        self._sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval
        self._data: dict[str, Any] = {}
        self._expires_at: dict[str, float] = {}
        self._lock = asyncio.Lock()
        self._handlers: dict[str, Callable[[Sequence[str], Sequence[Any]], Any]] = {
            scripts.RATE_LIMIT_INCREMENT.name: self._rate_limit_increment,
            scripts.LOCK_ACQUIRE.name: self._lock_acquire,
            scripts.LOCK_RELEASE.name: self._lock_release,
            scripts.LOCK_EXTEND.name: self._lock_extend,
            scripts.SEMAPHORE_ACQUIRE.name: self._semaphore_acquire,
            scripts.SEMAPHORE_RELEASE.name: self._semaphore_release,
            scripts.SEMAPHORE_EXTEND.name: self._semaphore_extend,
            scripts.SEMAPHORE_COUNT.name: self._semaphore_count,
        }

    # --- expiry bookkeeping ---

    def _live(self, key: str) -> Any | None:
        expires_at = self._expires_at.get(key)
        if expires_at is not None and self._clock() >= expires_at:
            self._data.pop(key, None)
            self._expires_at.pop(key, None)
        return self._data.get(key)

    def _expire(self, key: str, ttl_ms: int) -> None:
        self._expires_at[key] = self._clock() + ttl_ms / 1000

    def _pttl(self, key: str) -> int:
        if self._live(key) is None:
            return -2
        expires_at = self._expires_at.get(key)
        if expires_at is None:
            return -1
        return max(0, int((expires_at - self._clock()) * 1000))

    def _remove(self, key: str) -> bool:
        self._expires_at.pop(key, None)
        return self._data.pop(key, None) is not None

    def _sweep(self) -> None:
        now = self._clock()
        if now < self._next_sweep:
            return
        self._next_sweep = now + self._sweep_interval
        for key in [k for k, at in self._expires_at.items() if now >= at]:
            self._remove(key)

    def key_count(self) -> int:
        """Number of stored keys, including expired keys not yet swept."""
        return len(self._data)

    # --- CoordinationStore ---

    async def get(self, key: str, model: type[BaseModel] | None = None) -> Any | None:
        async with self._lock:
            raw = self._live(key)
        if raw is None:
            return None
        if not isinstance(raw, str):
            raise StoreUnavailableError(f"WRONGTYPE operation against key {key}")
        return serialization.loads(raw, model)

    async def set(self, key: str, value: Any, ttl: Ttl | None = None) -> None:
        payload = serialization.dumps(value)
        ttl_ms = ttl_to_ms(self._default_ttl if ttl is None else ttl)
        async with self._lock:
            self._sweep()
            self._data[key] = payload
            self._expire(key, ttl_ms)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            self._live(key)
            return self._remove(key)

    async def exists(self, key: str) -> bool:
        async with self._lock:
            return self._live(key) is not None

    async def run_script(
        self,
        script: StoreScript,
        keys: Sequence[str],
        args: Sequence[Any] = (),
    ) -> Any:
        handler = self._handlers.get(script.name)
        if handler is None:
            raise StoreUnavailableError(f"NOSCRIPT no handler for script {script.name}")
        # Yield first so concurrent callers interleave the way network round-trips would.
        await asyncio.sleep(0)
        async with self._lock:
            self._sweep()
            return handler(keys, args)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        async with self._lock:
            self._data.clear()
            self._expires_at.clear()

    async def pttl(self, key: str) -> int:
        """Remaining TTL in ms; -2 when missing, -1 when the key has no expiry (Redis PTTL)."""
        async with self._lock:
            return self._pttl(key)

    # --- script handlers (called with the lock held) ---

    def _rate_limit_increment(self, keys: Sequence[str], args: Sequence[Any]) -> list[int]:
        key = keys[0]
        current = int(self._live(key) or 0) + 1
        self._data[key] = str(current)
        if current == 1 or key not in self._expires_at:
            self._expire(key, int(args[0]))
        return [current, self._pttl(key)]

    def _lock_acquire(self, keys: Sequence[str], args: Sequence[Any]) -> int:
        key, (token, ttl_ms) = keys[0], args
        if self._live(key) is not None:
            return 0
        self._data[key] = token
        self._expire(key, int(ttl_ms))
        return 1

    def _lock_release(self, keys: Sequence[str], args: Sequence[Any]) -> int:
        key = keys[0]
        if self._live(key) == args[0]:
            return int(self._remove(key))
        return 0

    def _lock_extend(self, keys: Sequence[str], args: Sequence[Any]) -> int:
        key, (token, ttl_ms) = keys[0], args
        if self._live(key) == token:
            self._expire(key, int(ttl_ms))
            return 1
        return 0

    def _holders(self, key: str) -> "set[str]":
        holders = self._live(key)
        if holders is None:
            return set()
        if not isinstance(holders, set):
            raise StoreUnavailableError(f"WRONGTYPE operation against key {key}")
        return holders

    def _semaphore_acquire(self, keys: Sequence[str], args: Sequence[Any]) -> int:
        key, (max_permits, token, ttl_ms) = keys[0], args
        holders = self._holders(key)
        current = len(holders)
        if current < int(max_permits) and token not in holders:
            holders.add(token)
            self._data[key] = holders
            self._expire(key, int(ttl_ms))
            return current + 1
        return 0

    def _semaphore_release(self, keys: Sequence[str], args: Sequence[Any]) -> int:
        key = keys[0]
        holders = self._holders(key)
        if args[0] not in holders:
            return 0
        holders.discard(args[0])
        if not holders:
            # Redis drops empty sets.
            self._remove(key)
        return 1

    def _semaphore_extend(self, keys: Sequence[str], args: Sequence[Any]) -> int:
        key, (token, ttl_ms) = keys[0], args
        if token in self._holders(key):
            self._expire(key, int(ttl_ms))
            return 1
        return 0

    def _semaphore_count(self, keys: Sequence[str], args: Sequence[Any]) -> int:
        return len(self._holders(keys[0]))
