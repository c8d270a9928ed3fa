"""
Tests for session events and snapshot replay.

Tests cover:
- Serialization of each event type to and from dicts
- Replay of a full log reproduces the incremental snapshot
- Snapshots are never mutated by apply()
- Terminal snapshots reject further events
- Answers that repeat an item, skip the current item or exceed max_items
  are rejected
"""

import json
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from assessment.core.cat.item_pool import PoolScope
from assessment.core.cat.session_state import (
    AnswerRecorded,
    AskedItem,
    SessionAborted,
    SessionResult,
    SessionStarted,
    SessionState,
    event_from_dict,
    event_to_dict,
)
from assessment.schemas.cat_config import CATConfig, MarkingConfig
from libs.domain_types import (
    IRTModel,
    ScoringMethod,
    SessionStatus,
    TerminationReason,
)


@pytest.fixture
def started(linear_pool) -> SessionStarted:
    return SessionStarted(
        session_id="session-1",
        started_at=datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc),
        pool_scope=PoolScope(subject="math", topics=("algebra",)),
        marking_config=MarkingConfig(scoring_method=ScoringMethod.RAW),
        cat_config=CATConfig(algorithm=IRTModel.RASCH, min_items=3, max_items=5),
        items=tuple(linear_pool),
        starting_theta=0.0,
        starting_se=1.0,
        first_item_id="item-04",
    )


def _asked(item_id, correct, theta, se, offset=1000):
    return AskedItem(
        item_id=item_id,
        response=correct,
        correct=correct,
        score_awarded=2.0 if correct else -1.0,
        responded_at_offset_ms=offset,
        theta_after=theta,
        se_after=se,
    )


def _result(reason=TerminationReason.MAX_ITEMS):
    return SessionResult(
        final_ability_estimate=0.4,
        final_standard_error=0.9,
        percentile=66,
        raw_score=1.0,
        max_possible_score=4.0,
        items_asked=2,
        termination_reason=reason,
        reported_score=1.0,
        correct_count=1,
        unanswered_count=0,
        confidence=0.1,
        ability_progression=(0.8, 0.4),
        average_response_time_ms=1500.0,
    )


class TestEventSerialization:
    """Events survive a trip through JSON."""

    def test_session_started(self, started):
        payload = json.loads(json.dumps(event_to_dict(started)))
        restored = event_from_dict(payload)
        assert restored == started
        assert restored.started_at.tzinfo is not None

    def test_answer_recorded_with_result(self):
        event = AnswerRecorded(
            asked_item=_asked("item-04", None, 0.0, 1.0),
            termination_reason=TerminationReason.POOL_EXHAUSTED,
            result=_result(TerminationReason.POOL_EXHAUSTED),
        )
        restored = event_from_dict(json.loads(json.dumps(event_to_dict(event))))
        assert restored == event
        assert restored.asked_item.is_unanswered

    def test_session_aborted(self):
        event = SessionAborted(result=_result(TerminationReason.ABORTED))
        assert event_from_dict(event_to_dict(event)) == event

    def test_unknown_event_type_raises(self):
        with pytest.raises(ValueError, match="Unknown session event type"):
            event_from_dict({"type": "session_paused"})


class TestApply:
    """Tests for applying events to snapshots."""

    def test_start_issues_first_item(self, started):
        state = SessionState.start(started)
        assert state.status is SessionStatus.IN_PROGRESS
        assert state.current_item_id == "item-04"
        assert state.items_asked == 0
        assert state.item("item-09").irt_parameters.difficulty == pytest.approx(2.0)

    def test_answer_advances_snapshot(self, started):
        state = SessionState.start(started)
        updated = state.apply(
            AnswerRecorded(
                asked_item=_asked("item-04", True, 0.78, 1.0), next_item_id="item-06"
            )
        )
        assert updated.current_item_id == "item-06"
        assert updated.ability_estimate == pytest.approx(0.78)
        assert updated.asked_item_ids == ("item-04",)

    def test_apply_does_not_mutate(self, started):
        state = SessionState.start(started)
        state.apply(
            AnswerRecorded(
                asked_item=_asked("item-04", True, 0.78, 1.0), next_item_id="item-06"
            )
        )
        assert state.items_asked == 0
        assert state.current_item_id == "item-04"

    def test_termination_completes_session(self, started):
        state = SessionState.start(started).apply(
            AnswerRecorded(
                asked_item=_asked("item-04", True, 0.78, 1.0),
                termination_reason=TerminationReason.MAX_ITEMS,
                result=_result(),
            )
        )
        assert state.status is SessionStatus.COMPLETED
        assert state.is_terminal
        assert state.current_item_id is None
        assert state.result is not None

    def test_abort(self, started):
        state = SessionState.start(started).apply(
            SessionAborted(result=_result(TerminationReason.ABORTED))
        )
        assert state.status is SessionStatus.ABORTED
        assert state.termination_reason is TerminationReason.ABORTED

    def test_terminal_state_rejects_events(self, started):
        state = SessionState.start(started).apply(
            SessionAborted(result=_result(TerminationReason.ABORTED))
        )
        with pytest.raises(ValueError, match="aborted"):
            state.apply(AnswerRecorded(asked_item=_asked("item-04", True, 0.5, 1.0)))

    def test_second_start_rejected(self, started):
        with pytest.raises(ValueError, match="already started"):
            SessionState.start(started).apply(started)

    def test_version_counts_events(self, started):
        state = SessionState.start(started)
        assert state.version == 1
        state = state.apply(
            AnswerRecorded(
                asked_item=_asked("item-04", True, 0.78, 1.0), next_item_id="item-06"
            )
        )
        assert state.version == 2
        state = state.apply(SessionAborted(result=_result(TerminationReason.ABORTED)))
        assert state.version == 3

    def test_repeated_item_rejected(self, started):
        state = SessionState.start(started).apply(
            AnswerRecorded(
                asked_item=_asked("item-04", True, 0.78, 1.0), next_item_id="item-04"
            )
        )
        with pytest.raises(ValueError, match="already recorded an answer"):
            state.apply(
                AnswerRecorded(
                    asked_item=_asked("item-04", False, 0.2, 1.0),
                    next_item_id="item-06",
                )
            )

    def test_answer_for_other_item_rejected(self, started):
        state = SessionState.start(started)
        with pytest.raises(ValueError, match="expected an answer for item item-04"):
            state.apply(
                AnswerRecorded(
                    asked_item=_asked("item-09", True, 0.78, 1.0),
                    next_item_id="item-06",
                )
            )

    def test_answer_past_max_items_rejected(self, started):
        item_ids = ["item-01", "item-02", "item-03", "item-04", "item-05", "item-06"]
        state = SessionState.start(replace(started, first_item_id=item_ids[0]))
        for item_id, next_item_id in zip(item_ids[:5], item_ids[1:]):
            state = state.apply(
                AnswerRecorded(
                    asked_item=_asked(item_id, True, 0.5, 1.0),
                    next_item_id=next_item_id,
                )
            )
        assert state.items_asked == 5

        with pytest.raises(ValueError, match="max_items=5"):
            state.apply(
                AnswerRecorded(
                    asked_item=_asked("item-06", True, 0.5, 1.0),
                    next_item_id="item-07",
                )
            )

    def test_replay_rejects_duplicate_answer_in_log(self, started):
        answer = AnswerRecorded(
            asked_item=_asked("item-04", True, 0.78, 1.0), next_item_id="item-06"
        )
        with pytest.raises(ValueError, match="already recorded"):
            SessionState.replay([started, answer, answer])


class TestReplay:
    """Replaying a log rebuilds the same snapshot."""

    def test_replay_matches_incremental_state(self, started):
        events = [
            started,
            AnswerRecorded(
                asked_item=_asked("item-04", True, 0.78, 1.0, offset=1200),
                next_item_id="item-06",
            ),
            AnswerRecorded(
                asked_item=_asked("item-06", False, 0.4, 0.9, offset=3000),
                termination_reason=TerminationReason.MAX_ITEMS,
                result=_result(),
            ),
        ]
        incremental = SessionState.start(started)
        for event in events[1:]:
            incremental = incremental.apply(event)

        replayed = SessionState.replay(
            event_from_dict(json.loads(json.dumps(event_to_dict(e)))) for e in events
        )
        assert replayed == incremental
        assert replayed.result == _result()

    def test_replay_requires_start_event(self):
        with pytest.raises(ValueError, match="must begin"):
            SessionState.replay([SessionAborted(result=_result())])

    def test_replay_of_empty_log_raises(self):
        with pytest.raises(ValueError):
            SessionState.replay([])
