"""Guard base for lock and semaphore leases: release at most once, on exit or on demand."""

import time
from typing import Any, Protocol

from distsync.infrastructure.cache.base import Ttl


class LeaseOwner(Protocol):
    """The primitive that issued a lease and knows how to release/extend it in the store."""

    async def _release_lease(self, lease: "Lease") -> bool: ...

    async def _extend_lease(self, lease: "Lease", ttl: Ttl) -> bool: ...


class Lease:
    """
    In-process handle for a held lease. The release obligation is discharged exactly
    once: by release(), or by leaving an `async with` block, whichever comes first.
    Later release() calls are inert and return False.
    """

    def __init__(self, owner: LeaseOwner, resource: str, key: str, token: str, ttl: Ttl) -> None:
        self._owner = owner
        self.resource = resource
        self.key = key
        self.token = token
        self.ttl = ttl
        self.acquired_at = time.monotonic()
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def log_context(self) -> dict[str, Any]:
        return {
            "resource": self.resource,
            "token": self.token,
            "held_seconds": round(time.monotonic() - self.acquired_at, 3),
        }

    async def release(self) -> bool:
        """Release the lease. True if this call removed it; False if already released or lost."""
        if self._released:
            return False
        # Flip before awaiting so concurrent callers cannot both reach the store.
        self._released = True
        return await self._owner._release_lease(self)

    async def extend(self, ttl: Ttl | None = None) -> bool:
        """Refresh the lease TTL. False if the guard was released or the lease was lost."""
        if self._released:
            return False
        ttl = self.ttl if ttl is None else ttl
        extended = await self._owner._extend_lease(self, ttl)
        if extended:
            self.ttl = ttl
        return extended

    async def __aenter__(self) -> "Lease":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.release()

    def __repr__(self) -> str:
        state = "released" if self._released else "held"
        return f"<{type(self).__name__} resource={self.resource!r} token={self.token[:8]} {state}>"
