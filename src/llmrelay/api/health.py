from datetime import UTC, datetime

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from llmrelay.config import settings

router = APIRouter(prefix="/health", tags=["health"])
log = structlog.get_logger()


@router.get("")
async def health() -> JSONResponse:
    return JSONResponse(
        content={
            "status": "healthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "version": settings.app_version,
        }
    )


@router.get("/live")
async def liveness() -> JSONResponse:
    """Kubernetes liveness probe: always returns 200 if the process is running."""
    return JSONResponse(content={"status": "alive"})


@router.get("/ready")
async def readiness(request: Request) -> JSONResponse:
    """Kubernetes readiness probe: ready once the shared client holds a binding."""
    client = getattr(request.app.state, "client", None)
    if client is None or not client.is_initialized:
        log.debug("Readiness check failed", client_created=client is not None)
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "checks": {"client": "not initialized"}},
        )

    return JSONResponse(
        content={"status": "ready", "checks": {"client": "ok"}, "model": client.model_name}
    )
