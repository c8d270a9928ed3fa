"""
Pydantic schemas for configuration and request/response validation.
"""
from .cat_config import CATConfig, MarkingConfig
from .cat_sessions import (
    AbortSessionResponse,
    PoolScopeSchema,
    PreviousResultSchema,
    SessionResultResponse,
    SessionStatusResponse,
    StartSessionRequest,
    StartSessionResponse,
    SubmitAnswerRequest,
    TurnResponse,
)

__all__ = [
    "CATConfig",
    "MarkingConfig",
    "PoolScopeSchema",
    "PreviousResultSchema",
    "StartSessionRequest",
    "StartSessionResponse",
    "SubmitAnswerRequest",
    "TurnResponse",
    "SessionResultResponse",
    "AbortSessionResponse",
    "SessionStatusResponse",
]
