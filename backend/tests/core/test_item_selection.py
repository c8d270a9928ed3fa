"""
Tests for item selection.

Tests cover:
- Maximum information selection at the current theta
- Exclusion of already-asked items
- Deterministic tie-breaking by lowest item ID
- Pool exhaustion returns None
- Nearest-difficulty policy and its automatic fallback
- 3PL information shifts the preferred item above theta
"""

import pytest

from assessment.core.cat.item_selection import select_next_item
from libs.domain_types import IRTModel, ItemSelectionMethod


class TestMaxInformation:
    """Tests for maximum Fisher information selection."""

    def test_selects_item_nearest_theta_for_equal_discrimination(self, linear_pool):
        selected = select_next_item(0.7, linear_pool, asked_item_ids=())
        assert selected.id == "item-06"  # b = 0.667

    def test_prefers_higher_discrimination(self, item_factory):
        pool = [
            item_factory("low-a", 0.0, discrimination=0.8),
            item_factory("high-a", 0.3, discrimination=2.0),
        ]
        assert select_next_item(0.0, pool, asked_item_ids=()).id == "high-a"

    def test_excludes_asked_items(self, linear_pool):
        selected = select_next_item(0.7, linear_pool, asked_item_ids={"item-06"})
        assert selected.id != "item-06"
        assert selected.id == "item-07"  # b = 1.111 is next closest to 0.7

    def test_never_returns_asked_item(self, linear_pool):
        asked = set()
        for _ in range(len(linear_pool)):
            selected = select_next_item(0.0, linear_pool, asked_item_ids=asked)
            assert selected.id not in asked
            asked.add(selected.id)
        assert len(asked) == len(linear_pool)

    def test_ties_broken_by_lowest_id(self, item_factory):
        pool = [
            item_factory("item-b", 0.5),
            item_factory("item-a", -0.5),
            item_factory("item-c", 0.5),
        ]
        # All three are equally informative at theta = 0
        assert select_next_item(0.0, pool, asked_item_ids=()).id == "item-a"

    def test_symmetric_difficulties_tie_at_zero(self, linear_pool):
        # item-04 (b = -0.222) and item-05 (b = 0.222) tie at theta = 0
        assert select_next_item(0.0, linear_pool, asked_item_ids=()).id == "item-04"

    def test_deterministic(self, linear_pool):
        picks = {
            select_next_item(0.31, linear_pool, asked_item_ids={"item-05"}).id
            for _ in range(5)
        }
        assert len(picks) == 1

    def test_three_pl_prefers_easier_item_at_equal_distance(self, item_factory):
        """With guessing, information peaks above b, so an item slightly
        easier than theta is preferred over one equally far above it."""
        pool = [
            item_factory("above", 0.5, guessing=0.25),
            item_factory("below", -0.5, guessing=0.25),
        ]
        selected = select_next_item(0.0, pool, asked_item_ids=(), model=IRTModel.THREE_PL)
        assert selected.id == "below"


class TestPoolExhaustion:
    """Tests for empty pools."""

    def test_empty_pool_returns_none(self):
        assert select_next_item(0.0, [], asked_item_ids=()) is None

    def test_all_asked_returns_none(self, linear_pool):
        asked = {item.id for item in linear_pool}
        assert select_next_item(0.0, linear_pool, asked_item_ids=asked) is None


class TestNearestDifficulty:
    """Tests for the nearest-difficulty policy."""

    def test_selects_closest_difficulty(self, linear_pool):
        selected = select_next_item(
            1.5,
            linear_pool,
            asked_item_ids=(),
            method=ItemSelectionMethod.NEAREST_DIFFICULTY,
        )
        assert selected.id == "item-08"  # b = 1.556

    def test_ignores_discrimination(self, item_factory):
        pool = [
            item_factory("close", 0.1, discrimination=0.3),
            item_factory("sharp", 0.6, discrimination=3.0),
        ]
        selected = select_next_item(
            0.0, pool, asked_item_ids=(), method=ItemSelectionMethod.NEAREST_DIFFICULTY
        )
        assert selected.id == "close"

    def test_ties_broken_by_lowest_id(self, item_factory):
        pool = [item_factory("z", 1.0), item_factory("y", -1.0)]
        selected = select_next_item(
            0.0, pool, asked_item_ids=(), method="nearest_difficulty"
        )
        assert selected.id == "y"

    def test_fallback_when_no_item_is_discriminating(self, item_factory):
        pool = [
            item_factory("flat-far", 2.0, discrimination=0.0),
            item_factory("flat-near", 0.2, discrimination=0.0),
        ]
        selected = select_next_item(0.0, pool, asked_item_ids=())
        assert selected.id == "flat-near"

    def test_non_discriminating_items_skipped_by_max_information(self, item_factory):
        pool = [
            item_factory("flat", 0.0, discrimination=0.0),
            item_factory("useful", 1.5, discrimination=1.0),
        ]
        assert select_next_item(0.0, pool, asked_item_ids=()).id == "useful"


@pytest.mark.parametrize("theta", [-4.0, -1.0, 0.0, 2.5, 4.0])
def test_selection_returns_pool_member(theta, linear_pool):
    selected = select_next_item(theta, linear_pool, asked_item_ids=())
    assert selected in linear_pool
