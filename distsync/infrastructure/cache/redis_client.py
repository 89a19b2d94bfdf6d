# distsync/infrastructure/cache/redis_client.py

import asyncio
import logging
from typing import Any, Awaitable, Sequence, TypeVar

import redis.asyncio as redis
from pydantic import BaseModel
from redis.exceptions import RedisError

from distsync.config.settings import AppSettings, get_settings
from distsync.core.exceptions import StoreUnavailableError
from distsync.infrastructure.cache import serialization
from distsync.infrastructure.cache.base import StoreScript, Ttl, ttl_to_ms

logger = logging.getLogger(__name__)

T = TypeVar("T")

_STORE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


class RedisClient:
    """
    Pooled redis.asyncio wrapper implementing CoordinationStore.
    Every failure talking to Redis is surfaced as StoreUnavailableError.
    """

    def __init__(
        self,
        client: redis.Redis | None = None,
        settings: AppSettings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        if client is None:
            pool = redis.ConnectionPool.from_url(
                self._settings.redis_url,
                max_connections=self._settings.redis_max_connections,
                socket_timeout=self._settings.redis_socket_timeout_seconds,
                socket_connect_timeout=self._settings.redis_socket_timeout_seconds,
                decode_responses=True,
            )
            client = redis.Redis(connection_pool=pool)
        self.client = client
        self._default_ttl = self._settings.cache_default_ttl_seconds
        self._scripts: dict[str, Any] = {}

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "RedisClient":
        return cls(settings=settings)

    async def _execute(self, operation: str, key: str, call: Awaitable[T]) -> T:
        try:
            return await call
        except _STORE_ERRORS as e:
            logger.error(
                "store_unavailable",
                extra={"operation": operation, "key": key, "error": str(e)},
            )
            raise StoreUnavailableError(f"Store {operation} failed for {key}: {e}") from e

    async def get(self, key: str, model: type[BaseModel] | None = None) -> Any | None:
        """Get and decode value for key. Returns None if key does not exist."""
        raw = await self._execute("get", key, self.client.get(key))
        if raw is None:
            return None
        return serialization.loads(raw, model)

    async def set(self, key: str, value: Any, ttl: Ttl | None = None) -> None:
        """Encode and store value with a TTL (default TTL when not given)."""
        payload = serialization.dumps(value)
        ttl_ms = ttl_to_ms(self._default_ttl if ttl is None else ttl)
        await self._execute("set", key, self.client.set(key, payload, px=ttl_ms))

    async def delete(self, key: str) -> bool:
        """Delete a key. Returns True if it existed."""
        return bool(await self._execute("delete", key, self.client.delete(key)))

    async def exists(self, key: str) -> bool:
        return bool(await self._execute("exists", key, self.client.exists(key)))

    async def run_script(
        self,
        script: StoreScript,
        keys: Sequence[str],
        args: Sequence[Any] = (),
    ) -> Any:
        """Run a Lua script atomically (EVALSHA, falling back to EVAL on NOSCRIPT)."""
        registered = self._scripts.get(script.name)
        if registered is None:
            registered = self.client.register_script(script.source)
            self._scripts[script.name] = registered
        key = keys[0] if keys else script.name
        return await self._execute(
            f"script:{script.name}", key, registered(keys=list(keys), args=list(args))
        )

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except _STORE_ERRORS as e:
            logger.warning("store_ping_failed", extra={"error": str(e)})
            return False

    async def close(self) -> None:
        await self.client.aclose()
