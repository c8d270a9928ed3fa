"""
CAT (Computerized Adaptive Testing) engine.

This module provides IRT response models, MLE ability estimation, item
selection, stopping rules, marking and the session manager that ties them
together.
"""

from .ability_estimation import (
    AbilityEstimate,
    compute_prior_theta,
    estimate_ability_mle,
    percentage_to_theta,
)
from .engine import CATSessionManager, StartedSession, TurnOutcome
from .errors import (
    CATEngineError,
    InvalidConfigError,
    InvalidResponseError,
    ItemMismatchError,
    SessionNotFoundError,
    SessionNotInProgressError,
    SessionStillInProgressError,
)
from .irt_models import IRTParameters, fisher_information, probability_correct
from .item_pool import (
    InMemoryItemPoolProvider,
    Item,
    ItemPoolProvider,
    PoolScope,
    load_items_from_json,
)
from .item_selection import select_next_item
from .marking import grade_response, max_possible_score, score_response
from .score_conversion import theta_to_percentile
from .session_state import AskedItem, SessionResult, SessionState
from .session_store import (
    InMemorySessionStore,
    SessionStore,
    SessionStoreError,
    StaleSessionError,
)
from .stopping_rules import StoppingDecision, check_stopping_criteria, should_terminate

__all__ = [
    "AbilityEstimate",
    "estimate_ability_mle",
    "compute_prior_theta",
    "percentage_to_theta",
    "CATSessionManager",
    "StartedSession",
    "TurnOutcome",
    "CATEngineError",
    "InvalidConfigError",
    "InvalidResponseError",
    "ItemMismatchError",
    "SessionNotFoundError",
    "SessionNotInProgressError",
    "SessionStillInProgressError",
    "IRTParameters",
    "fisher_information",
    "probability_correct",
    "Item",
    "ItemPoolProvider",
    "InMemoryItemPoolProvider",
    "PoolScope",
    "load_items_from_json",
    "select_next_item",
    "grade_response",
    "score_response",
    "max_possible_score",
    "theta_to_percentile",
    "AskedItem",
    "SessionResult",
    "SessionState",
    "SessionStore",
    "InMemorySessionStore",
    "SessionStoreError",
    "StaleSessionError",
    "StoppingDecision",
    "check_stopping_criteria",
    "should_terminate",
]
