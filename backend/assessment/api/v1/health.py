"""
Liveness endpoint.
"""
from fastapi import APIRouter, Request

from assessment.core import settings
from assessment.core.datetime_utils import utc_now

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """
    Report liveness, build identity and whether sessions can be served.
    """
    manager_ready = getattr(request.app.state, "session_manager", None) is not None
    return {
        "status": "healthy",
        "timestamp": utc_now().isoformat(),
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "session_store": settings.SESSION_STORE,
        "sessions_enabled": manager_ready,
    }
