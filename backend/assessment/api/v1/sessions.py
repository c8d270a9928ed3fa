"""
Adaptive session endpoints.

Every engine error is converted through ``raise_for_engine_error`` so the
response carries both a message and a stable error code.
"""
import logging

from fastapi import APIRouter, Depends, status

from assessment.api.deps import get_session_manager
from assessment.core.cat.engine import CATSessionManager
from assessment.core.cat.errors import CATEngineError
from assessment.core.cat.item_pool import PoolScope
from assessment.core.error_responses import raise_for_engine_error
from assessment.schemas.cat_sessions import (
    AbortSessionResponse,
    SessionResultResponse,
    SessionStatusResponse,
    StartSessionRequest,
    StartSessionResponse,
    SubmitAnswerRequest,
    TurnResponse,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "",
    response_model=StartSessionResponse,
    status_code=status.HTTP_201_CREATED,
)
def start_session(
    request: StartSessionRequest,
    manager: CATSessionManager = Depends(get_session_manager),
):
    """
    Start a new adaptive session.

    Fetches the pool for the requested scope, applies the marking and CAT
    configuration and returns the first item to present.

    Raises:
        HTTPException: 422 (invalid_config) if a config is invalid or the
            filtered pool is empty
    """
    previous_results = None
    if request.previous_results:
        previous_results = [
            previous.model_dump(exclude_none=True)
            for previous in request.previous_results
        ]

    try:
        started = manager.start_session(
            pool_scope=PoolScope(
                subject=request.pool_scope.subject,
                topics=tuple(request.pool_scope.topics),
            ),
            marking_config=request.marking_config,
            cat_config=request.cat_config,
            previous_results=previous_results,
        )
    except CATEngineError as exc:
        logger.info(f"Rejected session start: {exc.message}")
        raise_for_engine_error(exc)

    return StartSessionResponse(
        session_id=started.session_id, first_item_id=started.first_item_id
    )


@router.post("/{session_id}/answers", response_model=TurnResponse)
def submit_answer(
    session_id: str,
    answer: SubmitAnswerRequest,
    manager: CATSessionManager = Depends(get_session_manager),
):
    """
    Answer the current item of a session.

    Returns the next item to present, or a null item once the session has
    completed.

    Raises:
        HTTPException: 404 if the session does not exist, 409 if it is no
            longer in progress or the item is not the current item, 422
            (invalid_response) if a text answer cannot be graded
    """
    try:
        outcome = manager.submit_answer(
            session_id=session_id,
            item_id=answer.item_id,
            response=answer.response,
            responded_at_offset_ms=answer.responded_at_offset_ms,
        )
    except CATEngineError as exc:
        raise_for_engine_error(exc)

    return TurnResponse(
        next_item_id=outcome.next_item_id, session_status=outcome.session_status
    )


@router.get("/{session_id}/result", response_model=SessionResultResponse)
def get_session_result(
    session_id: str,
    manager: CATSessionManager = Depends(get_session_manager),
):
    """
    Get the frozen result of a completed or aborted session.

    Raises:
        HTTPException: 404 if the session does not exist, 409 while it is
            still in progress
    """
    try:
        result = manager.get_result(session_id)
    except CATEngineError as exc:
        raise_for_engine_error(exc)

    return SessionResultResponse.from_result(result)


@router.post("/{session_id}/abort", response_model=AbortSessionResponse)
def abort_session(
    session_id: str,
    manager: CATSessionManager = Depends(get_session_manager),
):
    """
    Abort an in-progress session.

    Aborting an already aborted session succeeds without changes.

    Raises:
        HTTPException: 404 if the session does not exist, 409 if it has
            already completed
    """
    try:
        session_status = manager.abort_session(session_id)
    except CATEngineError as exc:
        raise_for_engine_error(exc)

    return AbortSessionResponse(session_status=session_status)


@router.get("/{session_id}", response_model=SessionStatusResponse)
def get_session(
    session_id: str,
    manager: CATSessionManager = Depends(get_session_manager),
):
    """
    Get the current state of a session.

    Raises:
        HTTPException: 404 if the session does not exist
    """
    try:
        state = manager.get_session(session_id)
    except CATEngineError as exc:
        raise_for_engine_error(exc)

    return SessionStatusResponse.from_state(state)
