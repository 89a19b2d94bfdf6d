"""Tests for API middleware: correlation ID, rate limit headers, 429 on breach and on outage."""

import pytest
from httpx import ASGITransport, AsyncClient
from starlette.requests import Request

from distsync.api.middleware import get_client_identifier, path_matches
from distsync.coordination.rate_limiter import RateLimiter
from distsync.main import app


@pytest.mark.asyncio
async def test_correlation_id_generated(client: AsyncClient):
    r = await client.get("/health")
    assert r.status_code == 200
    assert len(r.headers["X-Correlation-ID"]) > 0


@pytest.mark.asyncio
async def test_correlation_id_preserved_when_passed(client: AsyncClient):
    r = await client.get("/health", headers={"X-Correlation-ID": "my-correlation-123"})
    assert r.headers.get("X-Correlation-ID") == "my-correlation-123"
    assert r.json()["correlation_id"] == "my-correlation-123"


@pytest.mark.asyncio
async def test_general_limit_headers_on_success(client: AsyncClient):
    r = await client.get("/unknown", headers={"X-Forwarded-For": "10.0.0.1"})
    # Route does not exist, but the request still counted against the budget.
    assert r.status_code == 404
    assert r.headers["X-RateLimit-Limit"] == "100"
    assert r.headers["X-RateLimit-Remaining"] == "99"


@pytest.mark.asyncio
async def test_auth_paths_use_stricter_limit(client: AsyncClient):
    headers = {"X-Forwarded-For": "10.0.0.2"}
    for _ in range(10):
        r = await client.post("/auth/login", headers=headers)
        assert r.status_code != 429
    r = await client.post("/auth/login", headers=headers)
    assert r.status_code == 429
    assert r.headers["X-RateLimit-Remaining"] == "0"
    assert int(r.headers["Retry-After"]) > 0

    # Other clients and the general budget are unaffected.
    assert (await client.post("/auth/login", headers={"X-Forwarded-For": "10.0.0.3"})).status_code != 429
    assert (await client.get("/other", headers=headers)).status_code != 429


@pytest.mark.asyncio
async def test_exempt_paths_not_counted(client: AsyncClient, store):
    for _ in range(3):
        await client.get("/health", headers={"X-Forwarded-For": "10.0.0.4"})
    assert await store.exists("rate_limit:general:10.0.0.4") is False


@pytest.mark.asyncio
async def test_store_outage_denies_request(failing_store):
    """Fail closed: limiter cannot reach the store -> 429, never a pass-through."""
    app.state.rate_limiter = RateLimiter(failing_store)
    try:
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            r = await ac.get("/anything")
    finally:
        app.state.rate_limiter = None
    assert r.status_code == 429
    assert r.headers["Retry-After"] == "60"


def _request(headers: dict[str, str], client=("9.9.9.9", 1234)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": client,
    }
    return Request(scope)


@pytest.mark.parametrize(
    "headers,client,expected",
    [
        ({"X-Forwarded-For": "1.1.1.1, 2.2.2.2"}, ("9.9.9.9", 1), "1.1.1.1"),
        ({"X-Real-IP": "3.3.3.3"}, ("9.9.9.9", 1), "3.3.3.3"),
        ({}, ("9.9.9.9", 1), "9.9.9.9"),
        ({}, None, "unknown"),
    ],
)
def test_client_identifier(headers, client, expected):
    assert get_client_identifier(_request(headers, client)) == expected


@pytest.mark.parametrize(
    "path,expected",
    [
        ("/health", True),
        ("/health/live", True),
        ("/healthz-admin", False),
        ("/auth", True),
        ("/auth/login", True),
        ("/authors", False),
    ],
)
def test_path_matches_on_segment_boundary(path, expected):
    assert path_matches(path, ["/health", "/auth"]) is expected


@pytest.mark.asyncio
async def test_lookalike_paths_use_general_budget(client: AsyncClient, store):
    headers = {"X-Forwarded-For": "10.0.0.5"}
    r = await client.get("/healthz-admin", headers=headers)
    assert r.headers["X-RateLimit-Limit"] == "100"
    r = await client.get("/authors", headers=headers)
    assert r.headers["X-RateLimit-Limit"] == "100"
    assert await store.exists("rate_limit:auth:10.0.0.5") is False
    assert await store.exists("rate_limit:general:10.0.0.5") is True
