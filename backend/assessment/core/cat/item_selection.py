"""
Maximum Fisher Information (MFI) item selection for Computerized Adaptive Testing.

Selects the next item from the remaining pool that maximizes Fisher information
at the current ability estimate (theta), using the same response function as
the ability estimator.

The selection pipeline:
1. Filter out already-asked items
2. Compute Fisher information for each remaining item at current theta
3. Return the most informative item, breaking ties by lowest item ID

Selection is deterministic: the same theta, pool and history always produce the
same item.

Nearest-difficulty selection (item difficulty closest to theta) is available as
a configured policy and is used automatically when no remaining item has a
positive discrimination parameter.
"""

import logging
import math
from dataclasses import dataclass
from typing import Collection, List, Optional, Sequence

from assessment.core.cat.irt_models import fisher_information
from assessment.core.cat.item_pool import Item
from libs.domain_types import IRTModel, ItemSelectionMethod

logger = logging.getLogger(__name__)

# Relative tolerance under which two information values count as a tie
INFORMATION_TIE_TOLERANCE = 1e-9


@dataclass
class ItemCandidate:
    """An item with its computed Fisher information value."""

    item: Item
    information: float


def select_next_item(
    theta: float,
    candidate_pool: Sequence[Item],
    asked_item_ids: Collection[str],
    method: ItemSelectionMethod = ItemSelectionMethod.MAX_INFORMATION,
    model: IRTModel = IRTModel.TWO_PL,
) -> Optional[Item]:
    """
    Select the next item for an adaptive session.

    Args:
        theta: Current ability estimate.
        candidate_pool: Items available to the session.
        asked_item_ids: IDs of items already asked in this session.
        method: Selection policy.
        model: IRT model used to compute information.

    Returns:
        The selected item, or None if no items remain (pool exhausted).
    """
    excluded = set(asked_item_ids)
    eligible = [item for item in candidate_pool if item.id not in excluded]

    if not eligible:
        logger.info(
            f"No eligible items remaining. Pool size: {len(candidate_pool)}, "
            f"asked: {len(excluded)}"
        )
        return None

    method = ItemSelectionMethod(method)
    if method is ItemSelectionMethod.MAX_INFORMATION:
        informative = [
            item for item in eligible if item.irt_parameters.discrimination > 0
        ]
        if informative:
            return _select_max_information(theta, informative, IRTModel(model))
        logger.warning(
            f"No remaining item has a positive discrimination parameter "
            f"({len(eligible)} eligible); falling back to nearest-difficulty selection"
        )

    return _select_nearest_difficulty(theta, eligible)


def _select_max_information(
    theta: float,
    eligible: List[Item],
    model: IRTModel,
) -> Item:
    candidates = [
        ItemCandidate(
            item=item,
            information=fisher_information(theta, item.irt_parameters, model),
        )
        for item in eligible
    ]

    best_information = max(c.information for c in candidates)
    tied = [
        c
        for c in candidates
        if math.isclose(
            c.information, best_information, rel_tol=INFORMATION_TIE_TOLERANCE
        )
    ]
    selected = min(tied, key=lambda c: c.item.id)

    logger.debug(
        f"Item selection: theta={theta:.3f}, eligible={len(candidates)}, "
        f"tied={len(tied)}, selected {selected.item.id} "
        f"(a={selected.item.irt_parameters.discrimination:.2f}, "
        f"b={selected.item.irt_parameters.difficulty:.2f}, "
        f"info={selected.information:.4f})"
    )
    return selected.item


def _select_nearest_difficulty(theta: float, eligible: List[Item]) -> Item:
    selected = min(
        eligible,
        key=lambda item: (abs(item.irt_parameters.difficulty - theta), item.id),
    )
    logger.debug(
        f"Item selection (nearest difficulty): theta={theta:.3f}, "
        f"eligible={len(eligible)}, selected {selected.id} "
        f"(b={selected.irt_parameters.difficulty:.2f})"
    )
    return selected
