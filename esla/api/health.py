"""Health and metrics endpoints."""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok"}


@router.get("/metrics")
async def metrics(request: Request):
    """Basic metrics endpoint for observability."""
    service = getattr(request.app.state, "service", None)
    return {
        "service": "esla",
        "version": "0.1.0",
        "clock_running": bool(service and service.clock.running),
    }
