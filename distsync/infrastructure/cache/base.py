"""Store contract shared by the Redis client and the in-memory store. Injected; no global state."""

from dataclasses import dataclass
from typing import Any, Protocol, Sequence

from pydantic import BaseModel

Ttl = int | float


@dataclass(frozen=True)
class StoreScript:
    """
    A named compare-and-mutate step executed atomically by the store.
    Redis runs `source` as Lua; InMemoryStore dispatches on `name`.
    """

    name: str
    source: str


class CoordinationStore(Protocol):
    """Key-value operations the coordination primitives are allowed to use."""

    async def get(self, key: str, model: type[BaseModel] | None = None) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl: Ttl | None = None) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def exists(self, key: str) -> bool: ...

    async def run_script(
        self,
        script: StoreScript,
        keys: Sequence[str],
        args: Sequence[Any] = (),
    ) -> Any: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


def ttl_to_ms(ttl: Ttl) -> int:
    """Convert a positive TTL in seconds to whole milliseconds (at least 1)."""
    if ttl <= 0:
        raise ValueError(f"TTL must be positive, got {ttl}")
    return max(1, int(round(ttl * 1000)))
