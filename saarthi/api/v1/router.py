"""Main API router for v1 endpoints."""

from fastapi import APIRouter

from saarthi.api.v1 import webhooks
from saarthi.config import get_settings

settings = get_settings()

router = APIRouter()

router.include_router(webhooks.router)

# Simulation endpoints - not exposed in production
if not settings.is_production:
    from saarthi.api.v1 import simulate

    router.include_router(simulate.router)


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok", "message": "Saarthi API is running"}
