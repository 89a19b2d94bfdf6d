"""Fixtures for API unit tests: in-memory store wired into the app, AsyncClient."""

import pytest
from httpx import ASGITransport, AsyncClient

from distsync.api import dependencies
from distsync.coordination.rate_limiter import RateLimiter
from distsync.main import app


@pytest.fixture
def app_with_store(store):
    """App whose store and rate limiter use the in-memory store instead of Redis."""
    app.dependency_overrides[dependencies.get_store] = lambda: store
    app.state.rate_limiter = RateLimiter(store)
    yield app
    app.dependency_overrides.clear()
    app.state.rate_limiter = None


@pytest.fixture
async def client(app_with_store):
    transport = ASGITransport(app=app_with_store)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
