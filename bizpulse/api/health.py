"""
Health check and status endpoints
"""
from fastapi import APIRouter, Request
from datetime import datetime
from bizpulse.config import get_settings
from bizpulse import __version__

settings = get_settings()

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": __version__
    }


@router.get("/status")
async def get_status(request: Request):
    """Get system status"""
    service = getattr(request.app.state, "bi_service", None)
    return {
        "app_name": settings.app_name,
        "version": __version__,
        "environment": settings.environment,
        "features": {
            "realtime": settings.enable_realtime,
            "meeting_notifications": settings.enable_meeting_notifications
        },
        "realtime_year": service.realtime_year if service else None,
        "last_updated": service.last_updated.isoformat() if service and service.last_updated else None,
        "timestamp": datetime.utcnow().isoformat()
    }
