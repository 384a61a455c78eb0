"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...services.routing.osrm_client import check_health
from ...services.runtime import DispatchRuntime
from ..dependencies import get_runtime

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/routing", status_code=status.HTTP_200_OK)
async def health_routing(runtime: DispatchRuntime = Depends(get_runtime)) -> dict:
    """Probe the configured routing provider with a short campus leg."""
    provider = type(runtime.provider).__name__
    try:
        healthy = await check_health(runtime.provider)
        return {"service": "routing", "provider": provider, "healthy": healthy}
    except Exception as e:
        return {"service": "routing", "provider": provider, "healthy": False, "error": str(e)}
