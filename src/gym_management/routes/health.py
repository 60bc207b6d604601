"""Liveness and readiness probes."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from gym_management.routes.dependencies import get_container

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("/liveness")
async def liveness_probe():
    return {"status": "alive"}


@router.get("")
async def readiness_probe(container=Depends(get_container)):
    """Returns 503 until MongoDB answers a ping."""
    database_ok = await container.db.health_check()
    body = {
        "status": "ready" if database_ok else "not_ready",
        "database": database_ok,
        "scheduler_running": container.scheduler.scheduler.running,
    }
    return JSONResponse(status_code=200 if database_ok else 503, content=body)
