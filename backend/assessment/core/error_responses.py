"""
Standardized error response messages and builders.

Every error response body has the form ``{"detail": <message>, "code": <code>}``.
The code is stable and machine-readable; the message is for humans.

Usage:
    from assessment.core.error_responses import raise_for_engine_error

    try:
        outcome = manager.submit_answer(...)
    except CATEngineError as exc:
        raise_for_engine_error(exc)
"""

from typing import Dict, NoReturn, Optional

from fastapi import HTTPException, status

from assessment.core.cat.errors import (
    CATEngineError,
    InvalidConfigError,
    InvalidResponseError,
    ItemMismatchError,
    SessionNotFoundError,
    SessionNotInProgressError,
    SessionStillInProgressError,
)


class ErrorMessages:
    """Centralized messages for errors raised outside the session manager.

    Engine errors carry their own messages; these cover the HTTP layer.
    """

    # ==========================================================================
    # Generic
    # ==========================================================================
    INTERNAL_ERROR = "Internal server error."
    VALIDATION_FAILED = "Request validation failed."

    # ==========================================================================
    # Server configuration (503)
    # ==========================================================================
    SESSION_MANAGER_NOT_CONFIGURED = "Session manager is not configured on server."


class ErrorCodes:
    """Stable error codes returned alongside error messages."""

    INVALID_CONFIG = InvalidConfigError.code
    INVALID_RESPONSE = InvalidResponseError.code
    SESSION_NOT_FOUND = SessionNotFoundError.code
    SESSION_NOT_IN_PROGRESS = SessionNotInProgressError.code
    ITEM_MISMATCH = ItemMismatchError.code
    SESSION_STILL_IN_PROGRESS = SessionStillInProgressError.code
    VALIDATION_ERROR = "validation_error"
    NOT_CONFIGURED = "not_configured"
    INTERNAL_ERROR = "internal_error"
    HTTP_ERROR = "http_error"


ERROR_STATUS_CODES: Dict[str, int] = {
    ErrorCodes.INVALID_CONFIG: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCodes.INVALID_RESPONSE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCodes.SESSION_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCodes.SESSION_NOT_IN_PROGRESS: status.HTTP_409_CONFLICT,
    ErrorCodes.ITEM_MISMATCH: status.HTTP_409_CONFLICT,
    ErrorCodes.SESSION_STILL_IN_PROGRESS: status.HTTP_409_CONFLICT,
}


class APIError(HTTPException):
    """HTTPException carrying a stable error code for the response body."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        code: str,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.code = code


# ==============================================================================
# HTTPException Builder Functions
# ==============================================================================


def raise_not_found(detail: str, code: str = ErrorCodes.SESSION_NOT_FOUND) -> NoReturn:
    """Raise a 404 Not Found exception.

    Args:
        detail: User-facing error message
        code: Error code for the response body

    Raises:
        APIError: 404 Not Found
    """
    raise APIError(status.HTTP_404_NOT_FOUND, detail, code)


def raise_conflict(detail: str, code: str) -> NoReturn:
    """Raise a 409 Conflict exception.

    Use when the request conflicts with the session's current state.

    Raises:
        APIError: 409 Conflict
    """
    raise APIError(status.HTTP_409_CONFLICT, detail, code)


def raise_unprocessable(detail: str, code: str = ErrorCodes.INVALID_CONFIG) -> NoReturn:
    """Raise a 422 Unprocessable Entity exception.

    Raises:
        APIError: 422 Unprocessable Entity
    """
    raise APIError(status.HTTP_422_UNPROCESSABLE_ENTITY, detail, code)


def raise_not_configured(detail: str) -> NoReturn:
    """Raise a 503 error for missing server configuration.

    Raises:
        APIError: 503 Service Unavailable
    """
    raise APIError(
        status.HTTP_503_SERVICE_UNAVAILABLE, detail, ErrorCodes.NOT_CONFIGURED
    )


def raise_for_engine_error(exc: CATEngineError) -> NoReturn:
    """Convert a session manager error into the matching HTTP error.

    Raises:
        APIError: With the status code mapped from the error's code
            (500 for codes without a mapping).
    """
    status_code = ERROR_STATUS_CODES.get(
        exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    if status_code == status.HTTP_404_NOT_FOUND:
        raise_not_found(exc.message, exc.code)
    if status_code == status.HTTP_409_CONFLICT:
        raise_conflict(exc.message, exc.code)
    if status_code == status.HTTP_422_UNPROCESSABLE_ENTITY:
        raise_unprocessable(exc.message, exc.code)
    raise APIError(status_code, ErrorMessages.INTERNAL_ERROR, ErrorCodes.INTERNAL_ERROR) from exc
