"""
Exceptions raised by the CAT session manager.

Every error carries a stable ``code`` that the HTTP layer uses to pick a status
code and that clients can branch on without parsing messages.

Configuration errors are fatal at session start (no session is created).
Protocol errors are fatal to the offending request only; the session stays
usable for a corrected retry.
"""


class CATEngineError(Exception):
    """Base class for adaptive session errors."""

    code = "cat_engine_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidConfigError(CATEngineError):
    """Session configuration or item pool cannot support an adaptive session."""

    code = "invalid_config"


class SessionNotFoundError(CATEngineError):
    """No session exists with the requested ID."""

    code = "session_not_found"

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found.")
        self.session_id = session_id


class SessionNotInProgressError(CATEngineError):
    """The session has already completed or been aborted."""

    code = "session_not_in_progress"

    def __init__(self, session_id: str, status: str):
        super().__init__(
            f"Session {session_id} is already {status}. "
            "Only in-progress sessions accept answers."
        )
        self.session_id = session_id
        self.status = status


class InvalidResponseError(CATEngineError):
    """The submitted response cannot be graded for the current item."""

    code = "invalid_response"

    def __init__(self, session_id: str, item_id: str, reason: str):
        super().__init__(
            f"Response for item {item_id} in session {session_id} "
            f"cannot be graded: {reason}"
        )
        self.session_id = session_id
        self.item_id = item_id


class ItemMismatchError(CATEngineError):
    """The submitted item is not the item currently issued to the session."""

    code = "item_mismatch"

    def __init__(self, session_id: str, item_id: str, expected_item_id: str | None):
        if expected_item_id is None:
            message = f"Session {session_id} has no item awaiting an answer."
        else:
            message = (
                f"Item {item_id} is not the current item for session {session_id} "
                f"(expected {expected_item_id})."
            )
        super().__init__(message)
        self.session_id = session_id
        self.item_id = item_id
        self.expected_item_id = expected_item_id


class SessionStillInProgressError(CATEngineError):
    """A result was requested before the session reached a terminal state."""

    code = "session_still_in_progress"

    def __init__(self, session_id: str):
        super().__init__(
            f"Session {session_id} is still in progress. "
            "Results are available once the session completes or is aborted."
        )
        self.session_id = session_id
