"""Health check endpoints."""

from fastapi import APIRouter, Request

from ecolearn.config import get_settings


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> dict[str, str | bool]:
    """Readiness probe - reports whether progress storage is connected."""
    settings = get_settings()
    return {
        "status": "ready",
        "environment": settings.environment,
        "debug": settings.debug,
        "progress_storage": getattr(request.app.state, "progress_store", None)
        is not None,
    }


@router.get("")
async def health() -> dict[str, str]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
