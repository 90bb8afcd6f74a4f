"""Health check endpoints."""

from fastapi import APIRouter, Request

from swapquotes.config import get_settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "swapquotes"}


@router.get("/health/detailed")
async def detailed_health(request: Request):
    """Detailed health check with configuration and session info."""
    settings = get_settings()
    controller = request.app.state.controller
    return {
        "status": "healthy",
        "service": "swapquotes",
        "version": "0.1.0",
        "swaps_feature_is_live": controller.state.swaps_feature_is_live,
        "session_status": controller.state.status.value,
        "config": settings.get_safe_dict(),
    }
