"""
Tests for the session stores: in-memory and SQLAlchemy (SQLite in-memory).

Both stores are run through the same contract tests.
"""

from datetime import datetime, timezone

import pytest

from assessment.core.cat.db_session_store import SQLAlchemySessionStore
from assessment.core.cat.item_pool import PoolScope
from assessment.core.cat.session_state import (
    AnswerRecorded,
    AskedItem,
    SessionAborted,
    SessionResult,
    SessionStarted,
    SessionState,
)
from assessment.core.cat.session_store import (
    InMemorySessionStore,
    SessionStore,
    SessionStoreError,
    StaleSessionError,
)
from assessment.models.base import create_session_factory
from assessment.models.models import CATSessionEventRecord, CATSessionRecord
from assessment.schemas.cat_config import CATConfig, MarkingConfig
from libs.domain_types import SessionStatus, TerminationReason


@pytest.fixture
def db_session_factory():
    return create_session_factory("sqlite://")


@pytest.fixture(params=["memory", "database"])
def store(request, db_session_factory) -> SessionStore:
    if request.param == "memory":
        return InMemorySessionStore()
    return SQLAlchemySessionStore(db_session_factory)


@pytest.fixture
def started(linear_pool) -> SessionStarted:
    return SessionStarted(
        session_id="s-1",
        started_at=datetime(2026, 5, 4, 12, 0, tzinfo=timezone.utc),
        pool_scope=PoolScope(subject="math"),
        marking_config=MarkingConfig(),
        cat_config=CATConfig(),
        items=tuple(linear_pool),
        starting_theta=0.0,
        starting_se=1.0,
        first_item_id="item-04",
    )


def _answer(item_id="item-04", next_item_id="item-06"):
    return AnswerRecorded(
        asked_item=AskedItem(
            item_id=item_id,
            response="B",
            correct=True,
            score_awarded=2.0,
            responded_at_offset_ms=4200,
            theta_after=0.78,
            se_after=1.0,
        ),
        next_item_id=next_item_id,
    )


def _aborted():
    return SessionAborted(
        result=SessionResult(
            final_ability_estimate=0.78,
            final_standard_error=1.0,
            percentile=78,
            raw_score=2.0,
            max_possible_score=2.0,
            items_asked=1,
            termination_reason=TerminationReason.ABORTED,
            reported_score=78.0,
            correct_count=1,
            unanswered_count=0,
            confidence=0.0,
            ability_progression=(0.78,),
            average_response_time_ms=4200.0,
        )
    )


class TestSessionStoreContract:
    """Behavior shared by every store."""

    def test_satisfies_protocol(self, store):
        assert isinstance(store, SessionStore)

    def test_unknown_session_loads_none(self, store):
        assert store.load("missing") is None

    def test_create_then_load(self, store, started):
        store.create("s-1", started)
        assert store.load("s-1") == [started]

    def test_append_preserves_order(self, store, started):
        store.create("s-1", started)
        store.append("s-1", _answer())
        store.append("s-1", _aborted())

        events = store.load("s-1")
        assert [e.event_type for e in events] == [
            "session_started",
            "answer_recorded",
            "session_aborted",
        ]
        assert SessionState.replay(events).status is SessionStatus.ABORTED

    def test_duplicate_create_raises(self, store, started):
        store.create("s-1", started)
        with pytest.raises(SessionStoreError, match="already exists"):
            store.create("s-1", started)

    def test_append_to_unknown_session_raises(self, store):
        with pytest.raises(SessionStoreError, match="does not exist"):
            store.append("missing", _answer())

    def test_append_at_expected_sequence(self, store, started):
        store.create("s-1", started)
        store.append("s-1", _answer(), expected_sequence=1)
        store.append("s-1", _aborted(), expected_sequence=2)
        assert len(store.load("s-1")) == 3

    def test_stale_append_rejected_without_writing(self, store, started):
        store.create("s-1", started)
        store.append("s-1", _answer(), expected_sequence=1)

        # A second writer still holding the one-event log
        with pytest.raises(StaleSessionError):
            store.append("s-1", _answer(), expected_sequence=1)

        events = store.load("s-1")
        assert len(events) == 2
        assert SessionState.replay(events).asked_item_ids == ("item-04",)

    def test_stale_error_is_a_store_error(self):
        assert issubclass(StaleSessionError, SessionStoreError)

    def test_sessions_are_isolated(self, store, started):
        store.create("s-1", started)
        store.create("s-2", started)
        store.append("s-1", _answer())
        assert len(store.load("s-1")) == 2
        assert len(store.load("s-2")) == 1


class TestSQLAlchemySessionStore:
    """Database-specific behavior."""

    def test_status_column_tracks_terminal_events(self, db_session_factory, started):
        store = SQLAlchemySessionStore(db_session_factory)
        store.create("s-1", started)

        with db_session_factory() as db:
            assert db.get(CATSessionRecord, "s-1").status == "in_progress"

        store.append("s-1", _answer())
        store.append("s-1", _aborted())

        with db_session_factory() as db:
            assert db.get(CATSessionRecord, "s-1").status == "aborted"

    def test_events_have_contiguous_sequence_numbers(self, db_session_factory, started):
        store = SQLAlchemySessionStore(db_session_factory)
        store.create("s-1", started)
        store.append("s-1", _answer())
        store.append("s-1", _answer("item-06", "item-08"))

        with db_session_factory() as db:
            rows = (
                db.query(CATSessionEventRecord)
                .filter(CATSessionEventRecord.session_id == "s-1")
                .order_by(CATSessionEventRecord.sequence)
                .all()
            )
            assert [row.sequence for row in rows] == [0, 1, 2]
            assert rows[1].payload["asked_item"]["item_id"] == "item-04"

    def test_survives_new_store_instance(self, db_session_factory, started):
        SQLAlchemySessionStore(db_session_factory).create("s-1", started)
        assert SQLAlchemySessionStore(db_session_factory).load("s-1") == [started]
