# distsync/api/routers/health.py

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from distsync.api.dependencies import get_store
from distsync.config.settings import get_settings
from distsync.infrastructure.cache.base import CoordinationStore

router = APIRouter()


@router.get("/health")
async def health(request: Request, store: Annotated[CoordinationStore, Depends(get_store)]):
    """Health check: pings the coordination store. 503 when it is unreachable."""
    settings = get_settings()
    store_ok = await store.ping()
    body = {
        "status": "ok" if store_ok else "degraded",
        "store": store_ok,
        "correlation_id": request.state.correlation_id,
        "environment": settings.environment,
        "version": settings.version,
    }
    return JSONResponse(status_code=200 if store_ok else 503, content=body)
