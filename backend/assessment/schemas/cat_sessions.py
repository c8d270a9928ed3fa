"""
Pydantic schemas for adaptive session endpoints.
"""
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from assessment.core.cat.session_state import SessionResult, SessionState
from libs.domain_types import SessionStatus, TerminationReason


class PoolScopeSchema(BaseModel):
    """Subject and optional topic filter for a session's item pool."""

    subject: str = Field(..., min_length=1, description="Subject to draw items from")
    topics: List[str] = Field(
        default_factory=list, description="Restrict the pool to these topics"
    )


class PreviousResultSchema(BaseModel):
    """An earlier result for the same learner, used to seed starting ability."""

    final_ability_estimate: Optional[float] = Field(
        None, description="Final theta of an earlier adaptive session"
    )
    final_standard_error: Optional[float] = Field(
        None, gt=0.0, description="Final SE of that session"
    )
    percentage: Optional[float] = Field(
        None,
        ge=0.0,
        le=1.0,
        description="Historical percentage score (0-1) when no theta is available",
    )


class StartSessionRequest(BaseModel):
    """Schema for starting an adaptive session.

    Marking and CAT configs are validated by the session manager so that
    every configuration problem is reported with the ``invalid_config`` code.
    """

    pool_scope: PoolScopeSchema = Field(..., description="Item pool scope")
    marking_config: Optional[Dict[str, Any]] = Field(
        None, description="Marking policy overrides (defaults when omitted)"
    )
    cat_config: Optional[Dict[str, Any]] = Field(
        None, description="CAT configuration overrides (defaults when omitted)"
    )
    previous_results: Optional[List[PreviousResultSchema]] = Field(
        None, description="Earlier results used to compute the starting ability"
    )


class StartSessionResponse(BaseModel):
    """Schema returned when a session is created."""

    session_id: str = Field(..., description="New session ID")
    first_item_id: str = Field(..., description="ID of the first item to present")


class SubmitAnswerRequest(BaseModel):
    """Schema for answering the current item of a session."""

    item_id: str = Field(..., description="ID of the item being answered")
    response: Optional[Union[bool, str]] = Field(
        None,
        description="Answer text, a pre-graded boolean, or null when unanswered",
    )
    responded_at_offset_ms: Optional[int] = Field(
        None,
        ge=0,
        description="Milliseconds since session start (server clock when omitted)",
    )


class TurnResponse(BaseModel):
    """Schema returned after each answer."""

    next_item_id: Optional[str] = Field(
        None, description="Next item to present, null once the session ends"
    )
    session_status: SessionStatus = Field(..., description="Session status")


class SessionResultResponse(BaseModel):
    """Schema for a session's frozen result."""

    final_ability_estimate: float
    final_standard_error: float
    percentile: int = Field(..., ge=1, le=99)
    raw_score: float
    max_possible_score: float
    items_asked: int
    termination_reason: TerminationReason
    reported_score: float = Field(
        ..., description="Percentile or raw score, per the session's scoring method"
    )
    correct_count: int
    unanswered_count: int
    confidence: float = Field(..., ge=0.0, le=1.0)
    ability_progression: List[float] = Field(
        default_factory=list, description="Theta after each answered item"
    )
    average_response_time_ms: float

    @classmethod
    def from_result(cls, result: SessionResult) -> "SessionResultResponse":
        return cls.model_validate(result.to_dict())


class AbortSessionResponse(BaseModel):
    """Schema returned when a session is aborted."""

    session_status: SessionStatus


class SessionStatusResponse(BaseModel):
    """Schema for the current state of a session."""

    session_id: str
    status: SessionStatus
    items_asked: int
    current_item_id: Optional[str] = None
    ability_estimate: float
    standard_error: float
    asked_item_ids: List[str] = Field(default_factory=list)
    termination_reason: Optional[TerminationReason] = None

    @classmethod
    def from_state(cls, state: SessionState) -> "SessionStatusResponse":
        return cls(
            session_id=state.session_id,
            status=state.status,
            items_asked=state.items_asked,
            current_item_id=state.current_item_id,
            ability_estimate=state.ability_estimate,
            standard_error=state.standard_error,
            asked_item_ids=list(state.asked_item_ids),
            termination_reason=state.termination_reason,
        )
