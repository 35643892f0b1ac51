from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(tags=["health"])


async def _store_status(request: Request) -> str:
    """One of `initializing`, `healthy` or `degraded`, probing the store with a bounded timeout."""
    manager = request.app.state.store
    if not manager.is_ready():
        return "degraded" if manager.readiness.ever_ready else "initializing"
    timeout = request.app.state.settings.HEALTH_PROBE_TIMEOUT_SECONDS
    return "healthy" if await manager.probe(timeout) else "degraded"


@router.get("/healthz")
async def liveness():
    """Liveness probe. The process is up; never looks at the database."""
    return {"success": True, "status": "alive"}


@router.get("/health")
async def health(request: Request):
    """Always 200; the body reports `healthy`, `initializing` or `degraded`."""
    status = await _store_status(request)
    if status == "healthy":
        return {"success": True, "status": status, "database": "connected"}
    if status == "initializing":
        return {
            "success": True,
            "status": status,
            "database": "connecting",
            "message": "API is up, database initializing",
        }
    return {
        "success": True,
        "status": status,
        "database": "unavailable",
        "message": "API is up but database connection failed",
    }


@router.get("/readiness")
async def readiness(request: Request):
    """Strict readiness gate for orchestrators that should stop routing traffic."""
    status = await _store_status(request)
    if status == "healthy":
        return {"ready": True, "status": status}
    return JSONResponse(status_code=503, content={"ready": False, "status": status})
