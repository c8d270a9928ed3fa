"""
Shared FastAPI dependencies.
"""
from fastapi import Request

from assessment.core.cat.engine import CATSessionManager
from assessment.core.error_responses import ErrorMessages, raise_not_configured


def get_session_manager(request: Request) -> CATSessionManager:
    """Return the session manager attached to the application at startup."""
    manager = getattr(request.app.state, "session_manager", None)
    if manager is None:
        raise_not_configured(ErrorMessages.SESSION_MANAGER_NOT_CONFIGURED)
    return manager
