"""
Adaptive session state as an append-only event log plus a derived snapshot.

A session is fully described by its events:

- ``SessionStarted``: configuration, the item pool snapshot, starting ability
  and the first issued item
- ``AnswerRecorded``: one marked, estimated turn, and either the next issued
  item or the frozen result
- ``SessionAborted``: explicit cancellation with its frozen result

``SessionState.replay(events)`` folds the log into a snapshot. Applying an event
never mutates a snapshot; it returns a new one, so a turn can be computed in
full and committed (persisted, then swapped in) as one unit.

Events serialise to plain dicts so any store that can hold JSON can persist
them.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

from assessment.core.cat.item_pool import Item, PoolScope
from assessment.core.datetime_utils import ensure_timezone_aware
from assessment.schemas.cat_config import CATConfig, MarkingConfig
from libs.domain_types import SessionStatus, TerminationReason


@dataclass(frozen=True)
class AskedItem:
    """Record of one asked item and how it was marked and estimated.

    ``correct`` is None for an unanswered item.
    """

    item_id: str
    response: Any
    correct: Optional[bool]
    score_awarded: float
    responded_at_offset_ms: int
    theta_after: float
    se_after: float
    bound_hit: bool = False

    @property
    def is_unanswered(self) -> bool:
        return self.correct is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "response": self.response,
            "correct": self.correct,
            "score_awarded": self.score_awarded,
            "responded_at_offset_ms": self.responded_at_offset_ms,
            "theta_after": self.theta_after,
            "se_after": self.se_after,
            "bound_hit": self.bound_hit,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AskedItem":
        return cls(
            item_id=data["item_id"],
            response=data.get("response"),
            correct=data.get("correct"),
            score_awarded=float(data["score_awarded"]),
            responded_at_offset_ms=int(data["responded_at_offset_ms"]),
            theta_after=float(data["theta_after"]),
            se_after=float(data["se_after"]),
            bound_hit=bool(data.get("bound_hit", False)),
        )


@dataclass(frozen=True)
class SessionResult:
    """Terminal, immutable summary of an adaptive session."""

    final_ability_estimate: float
    final_standard_error: float
    percentile: int
    raw_score: float
    max_possible_score: float
    items_asked: int
    termination_reason: TerminationReason
    reported_score: float
    correct_count: int
    unanswered_count: int
    confidence: float
    ability_progression: Tuple[float, ...] = ()
    average_response_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "final_ability_estimate": self.final_ability_estimate,
            "final_standard_error": self.final_standard_error,
            "percentile": self.percentile,
            "raw_score": self.raw_score,
            "max_possible_score": self.max_possible_score,
            "items_asked": self.items_asked,
            "termination_reason": self.termination_reason.value,
            "reported_score": self.reported_score,
            "correct_count": self.correct_count,
            "unanswered_count": self.unanswered_count,
            "confidence": self.confidence,
            "ability_progression": list(self.ability_progression),
            "average_response_time_ms": self.average_response_time_ms,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SessionResult":
        return cls(
            final_ability_estimate=float(data["final_ability_estimate"]),
            final_standard_error=float(data["final_standard_error"]),
            percentile=int(data["percentile"]),
            raw_score=float(data["raw_score"]),
            max_possible_score=float(data["max_possible_score"]),
            items_asked=int(data["items_asked"]),
            termination_reason=TerminationReason(data["termination_reason"]),
            reported_score=float(data["reported_score"]),
            correct_count=int(data["correct_count"]),
            unanswered_count=int(data["unanswered_count"]),
            confidence=float(data["confidence"]),
            ability_progression=tuple(
                float(t) for t in data.get("ability_progression", ())
            ),
            average_response_time_ms=float(data.get("average_response_time_ms", 0.0)),
        )


@dataclass(frozen=True)
class SessionStarted:
    session_id: str
    started_at: datetime
    pool_scope: PoolScope
    marking_config: MarkingConfig
    cat_config: CATConfig
    items: Tuple[Item, ...]
    starting_theta: float
    starting_se: float
    first_item_id: str

    event_type = "session_started"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.event_type,
            "session_id": self.session_id,
            "started_at": self.started_at.isoformat(),
            "pool_scope": self.pool_scope.to_dict(),
            "marking_config": self.marking_config.model_dump(mode="json"),
            "cat_config": self.cat_config.model_dump(mode="json"),
            "items": [item.to_dict() for item in self.items],
            "starting_theta": self.starting_theta,
            "starting_se": self.starting_se,
            "first_item_id": self.first_item_id,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SessionStarted":
        return cls(
            session_id=data["session_id"],
            started_at=ensure_timezone_aware(
                datetime.fromisoformat(data["started_at"])
            ),
            pool_scope=PoolScope.from_dict(data["pool_scope"]),
            marking_config=MarkingConfig.model_validate(data["marking_config"]),
            cat_config=CATConfig.model_validate(data["cat_config"]),
            items=tuple(Item.from_dict(raw) for raw in data["items"]),
            starting_theta=float(data["starting_theta"]),
            starting_se=float(data["starting_se"]),
            first_item_id=data["first_item_id"],
        )


@dataclass(frozen=True)
class AnswerRecorded:
    asked_item: AskedItem
    next_item_id: Optional[str] = None
    termination_reason: Optional[TerminationReason] = None
    result: Optional[SessionResult] = None

    event_type = "answer_recorded"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.event_type,
            "asked_item": self.asked_item.to_dict(),
            "next_item_id": self.next_item_id,
            "termination_reason": (
                self.termination_reason.value if self.termination_reason else None
            ),
            "result": self.result.to_dict() if self.result else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AnswerRecorded":
        reason = data.get("termination_reason")
        result = data.get("result")
        return cls(
            asked_item=AskedItem.from_dict(data["asked_item"]),
            next_item_id=data.get("next_item_id"),
            termination_reason=TerminationReason(reason) if reason else None,
            result=SessionResult.from_dict(result) if result else None,
        )


@dataclass(frozen=True)
class SessionAborted:
    result: SessionResult

    event_type = "session_aborted"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.event_type, "result": self.result.to_dict()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SessionAborted":
        return cls(result=SessionResult.from_dict(data["result"]))


SessionEvent = Union[SessionStarted, AnswerRecorded, SessionAborted]

_EVENT_TYPES = {
    SessionStarted.event_type: SessionStarted,
    AnswerRecorded.event_type: AnswerRecorded,
    SessionAborted.event_type: SessionAborted,
}


def event_to_dict(event: SessionEvent) -> Dict[str, Any]:
    return event.to_dict()


def event_from_dict(data: Mapping[str, Any]) -> SessionEvent:
    """Rebuild an event from its dict form, dispatching on ``type``."""
    try:
        event_cls = _EVENT_TYPES[data["type"]]
    except KeyError:
        raise ValueError(f"Unknown session event type: {data.get('type')!r}") from None
    return event_cls.from_dict(data)


@dataclass(frozen=True)
class SessionState:
    """Snapshot of one adaptive session derived from its event log."""

    session_id: str
    started_at: datetime
    pool_scope: PoolScope
    marking_config: MarkingConfig
    cat_config: CATConfig
    items: Tuple[Item, ...]
    ability_estimate: float
    standard_error: float
    status: SessionStatus = SessionStatus.IN_PROGRESS
    asked_items: Tuple[AskedItem, ...] = ()
    current_item_id: Optional[str] = None
    termination_reason: Optional[TerminationReason] = None
    result: Optional[SessionResult] = None
    # Number of events folded into this snapshot; the next event's sequence
    version: int = 1
    _items_by_id: Dict[str, Item] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "_items_by_id", {item.id: item for item in self.items}
        )

    @property
    def items_asked(self) -> int:
        return len(self.asked_items)

    @property
    def asked_item_ids(self) -> Tuple[str, ...]:
        return tuple(asked.item_id for asked in self.asked_items)

    @property
    def is_terminal(self) -> bool:
        return self.status is not SessionStatus.IN_PROGRESS

    def item(self, item_id: str) -> Optional[Item]:
        return self._items_by_id.get(item_id)

    @classmethod
    def start(cls, event: SessionStarted) -> "SessionState":
        return cls(
            session_id=event.session_id,
            started_at=event.started_at,
            pool_scope=event.pool_scope,
            marking_config=event.marking_config,
            cat_config=event.cat_config,
            items=event.items,
            ability_estimate=event.starting_theta,
            standard_error=event.starting_se,
            current_item_id=event.first_item_id,
        )

    def apply(self, event: SessionEvent) -> "SessionState":
        """
        Return the snapshot that results from applying one event.

        Raises:
            ValueError: If the event cannot follow the current state: a second
                start event, any event after the session became terminal, or
                an answer that is not for the current item, repeats an asked
                item or goes past ``max_items``.
        """
        if isinstance(event, SessionStarted):
            raise ValueError(f"Session {self.session_id} has already started")
        if self.is_terminal:
            raise ValueError(
                f"Session {self.session_id} is {self.status.value}; "
                f"cannot apply {event.event_type}"
            )

        if isinstance(event, SessionAborted):
            return replace(
                self,
                status=SessionStatus.ABORTED,
                current_item_id=None,
                termination_reason=TerminationReason.ABORTED,
                result=event.result,
                version=self.version + 1,
            )

        asked = event.asked_item
        if asked.item_id in self.asked_item_ids:
            raise ValueError(
                f"Session {self.session_id} already recorded an answer "
                f"for item {asked.item_id}"
            )
        if asked.item_id != self.current_item_id:
            raise ValueError(
                f"Session {self.session_id} expected an answer for item "
                f"{self.current_item_id}, got {asked.item_id}"
            )
        if self.items_asked >= self.cat_config.max_items:
            raise ValueError(
                f"Session {self.session_id} has already asked "
                f"max_items={self.cat_config.max_items} items"
            )

        terminal = event.termination_reason is not None
        return replace(
            self,
            asked_items=self.asked_items + (asked,),
            ability_estimate=asked.theta_after,
            standard_error=asked.se_after,
            current_item_id=None if terminal else event.next_item_id,
            status=SessionStatus.COMPLETED if terminal else SessionStatus.IN_PROGRESS,
            termination_reason=event.termination_reason,
            result=event.result,
            version=self.version + 1,
        )

    @classmethod
    def replay(cls, events: Iterable[SessionEvent]) -> "SessionState":
        """
        Rebuild a snapshot from a session's full event log.

        Raises:
            ValueError: If the log is empty or does not begin with SessionStarted.
        """
        iterator = iter(events)
        first = next(iterator, None)
        if not isinstance(first, SessionStarted):
            raise ValueError("Session event log must begin with a session_started event")

        state = cls.start(first)
        for event in iterator:
            state = state.apply(event)
        return state
