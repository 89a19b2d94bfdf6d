# distsync/main.py

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from distsync.api.middleware import CorrelationIdMiddleware, RateLimitMiddleware
from distsync.api.routers import health
from distsync.config.logging import configure_logging
from distsync.config.settings import get_settings
from distsync.core.exceptions import (
    AcquisitionTimeoutError,
    CoordinationError,
    StoreUnavailableError,
)


async def store_unavailable_handler(request, exc: StoreUnavailableError):
    return JSONResponse(status_code=503, content={"detail": "Service temporarily degraded"})


async def acquisition_timeout_handler(request, exc: AcquisitionTimeoutError):
    return JSONResponse(
        status_code=409,
        content={"detail": "Resource busy", "resource": exc.resource},
    )


async def coordination_error_handler(request, exc: CoordinationError):
    return JSONResponse(status_code=500, content={"detail": exc.message})


def register_exception_handlers(app: FastAPI) -> None:
    """Outage -> 503 (service degraded), contention -> 409 (resource busy)."""
    app.add_exception_handler(StoreUnavailableError, store_unavailable_handler)
    app.add_exception_handler(AcquisitionTimeoutError, acquisition_timeout_handler)
    app.add_exception_handler(CoordinationError, coordination_error_handler)


settings = get_settings()
configure_logging(settings.log_level)

app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    debug=settings.debug,
)

# Middleware order: last added runs first (outermost). Request flow: CorrelationId -> RateLimit.
app.add_middleware(RateLimitMiddleware)
app.add_middleware(CorrelationIdMiddleware)

register_exception_handlers(app)

app.include_router(health.router)
