"""
Marking engine: converts responses into points under a session's marking policy.

Rules, in order:
    1. Unanswered: ``unanswered_penalty`` regardless of anything else
    2. Correct: ``positive_by_band[item.difficulty_band]``
    3. Incorrect: ``penalty_by_item_type[item.item_type]`` (0 for unlisted
       types) when negative marking is enabled, otherwise 0

The maximum possible score is the sum of positive points over every asked item
and is computed once, at finalisation.
"""

from typing import Any, Iterable, Optional

from assessment.core.cat.item_pool import Item
from assessment.schemas.cat_config import MarkingConfig


def grade_response(item: Item, response: Any) -> Optional[bool]:
    """
    Decide whether a response is correct.

    Args:
        item: The item that was answered.
        response: ``None`` for an unanswered item, a bool for a response graded
            upstream, or the learner's answer text.

    Returns:
        None when unanswered, otherwise whether the answer matches the item's
        answer key (trimmed, case-insensitive).

    Raises:
        ValueError: If a text response is given for an item with no answer key.
    """
    if response is None:
        return None
    if isinstance(response, bool):
        return response

    if not item.correct_answers:
        raise ValueError(
            f"Item {item.id} has no answer key; submit a pre-graded boolean response"
        )

    answer = str(response).strip().casefold()
    return any(answer == key.strip().casefold() for key in item.correct_answers)


def score_response(
    item: Item,
    is_correct: Optional[bool],
    is_unanswered: bool,
    config: MarkingConfig,
) -> float:
    """
    Points awarded for one response.

    Args:
        item: The item that was answered.
        is_correct: Whether the answer was correct. Ignored when unanswered.
        is_unanswered: Whether the learner gave no answer.
        config: The session's marking policy.

    Returns:
        Points (may be negative).
    """
    if is_unanswered:
        return config.unanswered_penalty

    if is_correct:
        return config.positive_by_band[item.difficulty_band]

    if not config.negative_enabled:
        return 0.0
    return config.penalty_by_item_type.get(item.item_type, 0.0)


def max_possible_score(items: Iterable[Item], config: MarkingConfig) -> float:
    """Score achievable had every given item been answered correctly."""
    return sum(config.positive_by_band[item.difficulty_band] for item in items)
