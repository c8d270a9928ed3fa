"""
SQLAlchemy-backed session store.

Each append runs in its own transaction: the event row and the session's
status column are committed together, or the transaction is rolled back and
the error propagates to the session manager, which then leaves its cached
snapshot untouched.
"""
import logging
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from assessment.core.cat.session_state import (
    AnswerRecorded,
    SessionAborted,
    SessionEvent,
    SessionStarted,
    event_from_dict,
    event_to_dict,
)
from assessment.core.cat.session_store import SessionStoreError, StaleSessionError
from assessment.models.models import CATSessionEventRecord, CATSessionRecord
from libs.domain_types import SessionStatus

logger = logging.getLogger(__name__)


def _status_after(event: SessionEvent) -> Optional[SessionStatus]:
    if isinstance(event, SessionStarted):
        return SessionStatus.IN_PROGRESS
    if isinstance(event, SessionAborted):
        return SessionStatus.ABORTED
    if isinstance(event, AnswerRecorded) and event.termination_reason is not None:
        return SessionStatus.COMPLETED
    return None


class SQLAlchemySessionStore:
    """Session store persisting event logs to ``cat_sessions`` / ``cat_session_events``."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def create(self, session_id: str, event: SessionStarted) -> None:
        with self._session_factory() as db:
            try:
                db.add(
                    CATSessionRecord(
                        id=session_id, status=SessionStatus.IN_PROGRESS.value
                    )
                )
                db.add(self._event_record(session_id, 0, event))
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise SessionStoreError(f"Session {session_id} already exists") from exc

    def append(
        self,
        session_id: str,
        event: SessionEvent,
        expected_sequence: Optional[int] = None,
    ) -> None:
        with self._session_factory() as db:
            try:
                record = db.get(CATSessionRecord, session_id)
                if record is None:
                    raise SessionStoreError(f"Session {session_id} does not exist")

                sequence = self._next_sequence(db, session_id)
                if expected_sequence is not None and sequence != expected_sequence:
                    raise StaleSessionError(
                        f"Session {session_id} log has {sequence} events, "
                        f"expected {expected_sequence}"
                    )
                db.add(self._event_record(session_id, sequence, event))

                status = _status_after(event)
                if status is not None:
                    record.status = status.value
                db.commit()
            except IntegrityError as exc:
                # A concurrent writer took this sequence number
                db.rollback()
                raise StaleSessionError(
                    f"Concurrent write to session {session_id} log"
                ) from exc
            except Exception:
                db.rollback()
                raise

    def load(self, session_id: str) -> Optional[List[SessionEvent]]:
        with self._session_factory() as db:
            if db.get(CATSessionRecord, session_id) is None:
                return None
            rows = db.scalars(
                select(CATSessionEventRecord)
                .where(CATSessionEventRecord.session_id == session_id)
                .order_by(CATSessionEventRecord.sequence)
            ).all()
            return [event_from_dict(row.payload) for row in rows]

    @staticmethod
    def _next_sequence(db: Session, session_id: str) -> int:
        current = db.scalar(
            select(func.max(CATSessionEventRecord.sequence)).where(
                CATSessionEventRecord.session_id == session_id
            )
        )
        return 0 if current is None else current + 1

    @staticmethod
    def _event_record(
        session_id: str, sequence: int, event: SessionEvent
    ) -> CATSessionEventRecord:
        return CATSessionEventRecord(
            session_id=session_id,
            sequence=sequence,
            event_type=event.event_type,
            payload=event_to_dict(event),
        )
