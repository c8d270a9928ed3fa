"""
Database models for persisted adaptive sessions.

A session row carries its current status for querying; the authoritative
history is the ordered list of event rows, each holding one serialized event.
"""
from datetime import datetime
from typing import Any, Dict, List

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assessment.core.datetime_utils import utc_now
from libs.domain_types import SessionStatus

from .base import Base


class CATSessionRecord(Base):
    """One adaptive session."""

    __tablename__ = "cat_sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    status: Mapped[str] = mapped_column(
        String(32), default=SessionStatus.IN_PROGRESS.value, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    events: Mapped[List["CATSessionEventRecord"]] = relationship(
        back_populates="session",
        order_by="CATSessionEventRecord.sequence",
        cascade="all, delete-orphan",
    )


class CATSessionEventRecord(Base):
    """One event in a session's append-only log."""

    __tablename__ = "cat_session_events"
    __table_args__ = (
        UniqueConstraint("session_id", "sequence", name="uq_cat_session_event_seq"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("cat_sessions.id", ondelete="CASCADE"), index=True
    )
    sequence: Mapped[int] = mapped_column(Integer)
    event_type: Mapped[str] = mapped_column(String(32))
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    session: Mapped[CATSessionRecord] = relationship(back_populates="events")
