"""
Persistence for adaptive session event logs.

A store durably keeps each session's append-only event log. The session manager
writes an event before it exposes the resulting state, and can rebuild any
session it does not hold in memory by replaying the stored log.
"""

import logging
import threading
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from assessment.core.cat.session_state import (
    SessionEvent,
    SessionStarted,
    event_from_dict,
    event_to_dict,
)

logger = logging.getLogger(__name__)


class SessionStoreError(Exception):
    """Raised when a session log cannot be written as requested."""

    pass


class StaleSessionError(SessionStoreError):
    """Raised when an append was computed against an outdated copy of the log."""

    pass


@runtime_checkable
class SessionStore(Protocol):
    """Durable append-only storage for session event logs."""

    def create(self, session_id: str, event: SessionStarted) -> None:
        """Create a new log whose first event is ``event``."""
        ...

    def append(
        self,
        session_id: str,
        event: SessionEvent,
        expected_sequence: Optional[int] = None,
    ) -> None:
        """
        Append one event to an existing log.

        When ``expected_sequence`` is given the append only succeeds if the log
        currently holds exactly that many events; otherwise StaleSessionError
        is raised and nothing is written.
        """
        ...

    def load(self, session_id: str) -> Optional[List[SessionEvent]]:
        """Return the full log, or None if the session is unknown."""
        ...


class InMemorySessionStore:
    """
    Session store backed by a dict of serialized events.

    Events are kept in their dict form so that loading exercises the same
    serialization path as a database-backed store.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._logs: Dict[str, List[Dict[str, Any]]] = {}

    def create(self, session_id: str, event: SessionStarted) -> None:
        with self._lock:
            if session_id in self._logs:
                raise SessionStoreError(f"Session {session_id} already exists")
            self._logs[session_id] = [event_to_dict(event)]

    def append(
        self,
        session_id: str,
        event: SessionEvent,
        expected_sequence: Optional[int] = None,
    ) -> None:
        with self._lock:
            log = self._logs.get(session_id)
            if log is None:
                raise SessionStoreError(f"Session {session_id} does not exist")
            if expected_sequence is not None and len(log) != expected_sequence:
                raise StaleSessionError(
                    f"Session {session_id} log has {len(log)} events, "
                    f"expected {expected_sequence}"
                )
            log.append(event_to_dict(event))

    def load(self, session_id: str) -> Optional[List[SessionEvent]]:
        with self._lock:
            log = self._logs.get(session_id)
            if log is None:
                return None
            return [event_from_dict(raw) for raw in log]

    def __len__(self) -> int:
        with self._lock:
            return len(self._logs)
