"""Health check endpoints."""

from fastapi import APIRouter, Request
from scribe_os import __version__

router = APIRouter()


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Basic health check, plus database reachability when wired."""
    service = getattr(request.app.state, "service", None)
    database = "unknown"
    if service is not None:
        try:
            await service.store.ping()
            database = "ok"
        except Exception:
            database = "unavailable"

    return {
        "status": "healthy" if database != "unavailable" else "degraded",
        "service": "scribe-os",
        "version": __version__,
        "database": database,
    }


@router.get("/health/live")
async def liveness_check() -> dict:
    """Liveness check - basic process health."""
    return {"status": "alive"}
