"""
Configuration models supplied when an adaptive session starts.

Both models are frozen: a session's marking policy and CAT configuration never
change once the session exists. Cross-field rules (minimum vs maximum items,
positive SE threshold, non-empty pool) are enforced by the session manager,
which reports them as ``InvalidConfigError``.
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from assessment.core.config import settings
from libs.domain_types import (
    DifficultyBand,
    IRTModel,
    ItemSelectionMethod,
    ItemType,
    NonMixedStrategy,
    ScoringMethod,
)

DEFAULT_POSITIVE_BY_BAND: Dict[DifficultyBand, float] = {
    DifficultyBand.EASY: 1.0,
    DifficultyBand.MEDIUM: 2.0,
    DifficultyBand.HARD: 3.0,
}

DEFAULT_PENALTY_BY_ITEM_TYPE: Dict[ItemType, float] = {
    ItemType.SINGLE_RESPONSE: -1.0,
    ItemType.OPEN_RESPONSE: 0.0,
    ItemType.OTHER: 0.0,
}


class MarkingConfig(BaseModel):
    """Positive and negative marking policy for a session."""

    model_config = ConfigDict(frozen=True)

    positive_by_band: Dict[DifficultyBand, float] = Field(
        default_factory=lambda: dict(DEFAULT_POSITIVE_BY_BAND),
        description="Points for a correct answer, by difficulty band",
    )
    negative_enabled: bool = Field(
        default=True, description="Whether incorrect answers are penalised"
    )
    penalty_by_item_type: Dict[ItemType, float] = Field(
        default_factory=lambda: dict(DEFAULT_PENALTY_BY_ITEM_TYPE),
        description="Points for an incorrect answer, by item type. "
        "Unlisted types score 0.",
    )
    unanswered_penalty: float = Field(
        default=0.0, description="Points for an unanswered item"
    )
    scoring_method: ScoringMethod = Field(
        default=ScoringMethod.PERCENTILE,
        description="Which score is reported as the session's headline score",
    )

    @field_validator("positive_by_band")
    @classmethod
    def fill_missing_bands(
        cls, value: Dict[DifficultyBand, float]
    ) -> Dict[DifficultyBand, float]:
        """Bands left out of the mapping keep their default points."""
        merged = dict(DEFAULT_POSITIVE_BY_BAND)
        merged.update(value)
        return merged


class CATConfig(BaseModel):
    """Adaptive algorithm, stopping and estimation settings for a session."""

    model_config = ConfigDict(frozen=True)

    algorithm: IRTModel = Field(
        default=IRTModel.TWO_PL, description="IRT model (rasch, 2pl, 3pl)"
    )
    starting_theta: float = Field(default=0.0, description="Initial ability estimate")
    starting_se: float = Field(
        default=1.0, gt=0.0, description="Initial (maximum) standard error"
    )
    min_items: int = Field(
        default_factory=lambda: settings.CAT_DEFAULT_MIN_ITEMS,
        description="Items required before the precision rule may stop the session",
    )
    max_items: int = Field(
        default_factory=lambda: settings.CAT_DEFAULT_MAX_ITEMS,
        description="Hard limit on items asked",
    )
    se_threshold: float = Field(
        default_factory=lambda: settings.CAT_DEFAULT_SE_THRESHOLD,
        description="Stop once the standard error is at or below this value",
    )
    item_selection_method: ItemSelectionMethod = Field(
        default=ItemSelectionMethod.MAX_INFORMATION,
        description="Item selection policy",
    )
    allowed_item_types: Optional[List[ItemType]] = Field(
        default=None, description="Item types eligible for the pool (None = all)"
    )
    allowed_difficulty_bands: Optional[List[DifficultyBand]] = Field(
        default=None,
        description="Difficulty bands eligible for the pool (None = all)",
    )
    theta_min: float = Field(default_factory=lambda: settings.CAT_THETA_MIN)
    theta_max: float = Field(default_factory=lambda: settings.CAT_THETA_MAX)
    max_iterations: int = Field(
        default_factory=lambda: settings.CAT_MLE_MAX_ITERATIONS, ge=1
    )
    convergence_tolerance: float = Field(
        default_factory=lambda: settings.CAT_MLE_TOLERANCE, gt=0.0
    )
    non_mixed_strategy: NonMixedStrategy = Field(
        default=NonMixedStrategy.STEP,
        description="Theta placement for all-correct / all-incorrect histories",
    )
    non_mixed_step: float = Field(
        default_factory=lambda: settings.CAT_NON_MIXED_STEP, gt=0.0
    )
    unanswered_as_incorrect: bool = Field(
        default=True,
        description="Count unanswered items as incorrect when estimating ability. "
        "When False they are left out of estimation.",
    )
    population_mean: float = Field(
        default=0.0, description="Population theta mean for percentile conversion"
    )
    population_sd: float = Field(
        default=1.0, gt=0.0, description="Population theta SD for percentile conversion"
    )
