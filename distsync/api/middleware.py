"""API middleware: correlation ID and fail-closed rate limiting."""

import logging
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

from distsync.api.dependencies import get_rate_limiter, get_store
from distsync.config.settings import get_settings
from distsync.coordination.rate_limiter import RateLimitPolicy, RateLimiter, RateLimitResult
from distsync.core.context import client_id_ctx, correlation_id_ctx

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
FORWARDED_FOR_HEADER = "X-Forwarded-For"
REAL_IP_HEADER = "X-Real-IP"


def get_client_identifier(request: Request) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer, else 'unknown'."""
    forwarded = request.headers.get(FORWARDED_FOR_HEADER)
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get(REAL_IP_HEADER)
    if real_ip and real_ip.strip():
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def path_matches(path: str, prefixes: list[str]) -> bool:
    """True when path equals a prefix or sits below it on a segment boundary."""
    return any(path == p or path.startswith(p.rstrip("/") + "/") for p in prefixes)


def rate_limited_response(result: RateLimitResult) -> Response:
    return PlainTextResponse(
        "Too many requests. Please try again later.",
        status_code=429,
        headers={
            "Retry-After": str(result.retry_after_seconds or 1),
            "X-RateLimit-Remaining": "0",
        },
    )


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Generate or preserve correlation ID; attach to request.state, response header, and logging context."""

    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        correlation_id_ctx.set(correlation_id)

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    General budget for every path, stricter auth budget for auth paths, none for exempt paths.
    Denied (including store-outage denials) -> 429 with Retry-After.
    """

    def _limiter(self, request: Request) -> RateLimiter:
        limiter = getattr(request.app.state, "rate_limiter", None)
        if limiter is None:
            limiter = get_rate_limiter(get_store())
        return limiter

    async def dispatch(self, request: Request, call_next) -> Response:
        settings = get_settings()
        path = request.url.path
        if path_matches(path, settings.rate_limit_exempt_paths):
            return await call_next(request)

        if path_matches(path, settings.rate_limit_auth_paths):
            policy = RateLimitPolicy.auth(settings)
        else:
            policy = RateLimitPolicy.general(settings)

        client_id = get_client_identifier(request)
        client_id_ctx.set(client_id)
        result = await self._limiter(request).check_policy(policy, client_id)
        if not result.allowed:
            logger.warning(
                "request_rate_limited",
                extra={
                    "client": client_id,
                    "policy": policy.name,
                    "count": result.count,
                    "degraded": result.degraded,
                },
            )
            return rate_limited_response(result)

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(result.limit)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        return response
