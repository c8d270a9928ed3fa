"""
Stopping rules for Computerized Adaptive Testing (CAT).

Stopping Rules (evaluated in priority order):
    1. Maximum items: the session stops once MAX_ITEMS have been asked
    2. Precision: the session stops once at least MIN_ITEMS have been asked
       and SE(theta) <= SE_THRESHOLD
    3. Pool exhausted: the session stops when the item selector has nothing
       left to offer (checked by the session manager after rules 1-2 pass)

Maximum items is checked before precision, so a turn that satisfies both
reports ``max_items``.

References:
    - Weiss, D. J., & Kingsbury, G. G. (1984). Application of computerized
      adaptive testing to educational problems. Journal of Educational
      Measurement, 21(4), 361-375.
    - van der Linden, W. J., & Glas, C. A. W. (Eds.). (2010). Elements of
      adaptive testing. New York: Springer.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from libs.domain_types import SessionStatus, TerminationReason

if TYPE_CHECKING:
    from assessment.core.cat.session_state import SessionState
    from assessment.schemas.cat_config import CATConfig

logger = logging.getLogger(__name__)

SE_THRESHOLD = 0.30
MIN_ITEMS = 5
MAX_ITEMS = 20


@dataclass
class StoppingDecision:
    """
    Result of evaluating stopping criteria for a CAT session.

    Attributes:
        should_stop: Whether the session should terminate.
        reason: Primary reason for stopping (if should_stop=True), or None.
        details: Diagnostic information: se, items_asked, se_threshold,
            min_items_met, at_max_items, precision_met.
    """

    should_stop: bool
    reason: Optional[TerminationReason]
    details: Dict[str, Any]


def check_stopping_criteria(
    items_asked: int,
    standard_error: float,
    min_items: int = MIN_ITEMS,
    max_items: int = MAX_ITEMS,
    se_threshold: float = SE_THRESHOLD,
) -> StoppingDecision:
    """
    Evaluate the item-count and precision stopping rules.

    Args:
        items_asked: Number of items asked so far.
        standard_error: Current standard error of the ability estimate.
        min_items: Items required before the precision rule can apply.
        max_items: Hard limit on items asked.
        se_threshold: Stop once SE is at or below this value.

    Returns:
        StoppingDecision with should_stop flag, reason, and diagnostic details.

    Raises:
        ValueError: If standard_error or items_asked is negative, or
            min_items exceeds max_items.
    """
    if standard_error < 0:
        raise ValueError(f"Standard error must be non-negative, got {standard_error}")
    if items_asked < 0:
        raise ValueError(f"Number of items must be non-negative, got {items_asked}")
    if min_items > max_items:
        raise ValueError(
            f"min_items ({min_items}) must not exceed max_items ({max_items})"
        )

    min_items_met = items_asked >= min_items
    precision_met = min_items_met and standard_error <= se_threshold
    details: Dict[str, Any] = {
        "se": standard_error,
        "items_asked": items_asked,
        "se_threshold": se_threshold,
        "min_items_met": min_items_met,
        "at_max_items": items_asked >= max_items,
        "precision_met": precision_met,
    }

    # Rule 1: Maximum items (overrides everything else)
    if items_asked >= max_items:
        logger.info(f"Stopping: reached maximum items ({items_asked}/{max_items})")
        return StoppingDecision(
            should_stop=True, reason=TerminationReason.MAX_ITEMS, details=details
        )

    # Rule 2: Precision, only once the minimum test length is reached
    if precision_met:
        logger.info(
            f"Stopping: SE threshold met (SE={standard_error:.4f} <= "
            f"{se_threshold:.4f}) after {items_asked} items"
        )
        return StoppingDecision(
            should_stop=True,
            reason=TerminationReason.PRECISION_REACHED,
            details=details,
        )

    logger.debug(
        f"Continuing: SE={standard_error:.4f} (threshold={se_threshold:.4f}), "
        f"items={items_asked} (min={min_items}, max={max_items})"
    )
    return StoppingDecision(should_stop=False, reason=None, details=details)


def should_terminate(
    session: "SessionState",
    config: "CATConfig",
) -> Tuple[bool, Optional[TerminationReason]]:
    """
    Decide whether a session ends after its latest turn.

    Terminal sessions always report True with the reason they ended for.
    Pool exhaustion is not evaluated here; it depends on the item selector.
    """
    if session.status is not SessionStatus.IN_PROGRESS:
        return (True, session.termination_reason)

    decision = check_stopping_criteria(
        items_asked=session.items_asked,
        standard_error=session.standard_error,
        min_items=config.min_items,
        max_items=config.max_items,
        se_threshold=config.se_threshold,
    )
    return (decision.should_stop, decision.reason)
