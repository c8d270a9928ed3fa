"""Shared domain types for the adaptive assessment engine.

This package is the single source of truth for the enums used by the engine,
the HTTP schemas and the session persistence layer.

Usage:
    from libs.domain_types import ItemType, DifficultyBand, SessionStatus
"""

import enum


class ItemType(str, enum.Enum):
    """Kinds of scoreable items."""

    SINGLE_RESPONSE = "single_response"
    OPEN_RESPONSE = "open_response"
    OTHER = "other"


class DifficultyBand(str, enum.Enum):
    """Coarse difficulty bands used for positive marking."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class SessionStatus(str, enum.Enum):
    """Adaptive session status."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABORTED = "aborted"


class TerminationReason(str, enum.Enum):
    """Why an adaptive session stopped."""

    MAX_ITEMS = "max_items"
    PRECISION_REACHED = "precision_reached"
    POOL_EXHAUSTED = "pool_exhausted"
    ABORTED = "aborted"


class IRTModel(str, enum.Enum):
    """Item response models supported by the ability estimator."""

    RASCH = "rasch"
    TWO_PL = "2pl"
    THREE_PL = "3pl"


class ItemSelectionMethod(str, enum.Enum):
    """Policies for choosing the next item."""

    MAX_INFORMATION = "max_information"
    NEAREST_DIFFICULTY = "nearest_difficulty"


class ScoringMethod(str, enum.Enum):
    """Which score is reported as the headline session score."""

    RAW = "raw"
    PERCENTILE = "percentile"


class NonMixedStrategy(str, enum.Enum):
    """Handling of all-correct / all-incorrect response patterns.

    FENCE clamps theta to the nearest bound of the estimation range.
    STEP moves theta a fixed distance past the hardest (or easiest) item
    answered so far, clamped to the same range.
    """

    FENCE = "fence"
    STEP = "step"


__all__ = [
    "ItemType",
    "DifficultyBand",
    "SessionStatus",
    "TerminationReason",
    "IRTModel",
    "ItemSelectionMethod",
    "ScoringMethod",
    "NonMixedStrategy",
]
