"""
CATSessionManager: Orchestrator for adaptive assessment sessions.

Manages item selection, ability estimation (bounded MLE), marking and stopping
criteria during a Computerized Adaptive Testing (CAT) session.

Each session is an append-only event log held by a ``SessionStore``. A turn is
computed against an immutable snapshot, its event is written to the store, and
only then is the cached snapshot replaced. A score and the ability update it
caused therefore commit together or not at all, and any manager sharing the
store can rebuild a session by replaying its log.

Turns within one session are serialised by a per-session lock; different
sessions proceed in parallel. Across managers sharing a store, each append
names the log length its snapshot was built from, so a turn computed from an
outdated snapshot is refused and re-validated against the stored log.
Locks and cached snapshots are only held for sessions that exist and are in
progress.
"""
import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Tuple,
    TypeVar,
    Union,
)

from pydantic import BaseModel, ValidationError

from assessment.core.cat.ability_estimation import (
    PERCENTAGE_PRIOR_SE,
    ResponseHistory,
    compute_prior_theta,
    estimate_ability_mle,
    percentage_to_theta,
)
from assessment.core.cat.errors import (
    InvalidConfigError,
    InvalidResponseError,
    ItemMismatchError,
    SessionNotFoundError,
    SessionNotInProgressError,
    SessionStillInProgressError,
)
from assessment.core.cat.item_pool import Item, ItemPoolProvider, PoolScope
from assessment.core.cat.item_selection import select_next_item
from assessment.core.cat.marking import (
    grade_response,
    max_possible_score,
    score_response,
)
from assessment.core.cat.score_conversion import (
    standard_error_to_confidence,
    theta_to_percentile,
)
from assessment.core.cat.session_state import (
    AnswerRecorded,
    AskedItem,
    SessionAborted,
    SessionEvent,
    SessionResult,
    SessionStarted,
    SessionState,
)
from assessment.core.cat.session_store import (
    InMemorySessionStore,
    SessionStore,
    StaleSessionError,
)
from assessment.core.cat.stopping_rules import should_terminate
from assessment.core.datetime_utils import elapsed_ms, utc_now
from assessment.core.logging_config import session_id_context
from assessment.schemas.cat_config import CATConfig, MarkingConfig
from libs.domain_types import (
    ScoringMethod,
    SessionStatus,
    TerminationReason,
)

logger = logging.getLogger(__name__)

ConfigInput = Union[BaseModel, Mapping[str, Any], None]
PreviousResult = Union[SessionResult, Mapping[str, Any]]
T = TypeVar("T")

# Tries per turn when the stored log has moved past the cached snapshot
COMMIT_ATTEMPTS = 2


@dataclass(frozen=True)
class StartedSession:
    """Identifier and first item of a newly created session."""

    session_id: str
    first_item_id: str


@dataclass(frozen=True)
class TurnOutcome:
    """Outcome of one submitted answer.

    ``next_item_id`` is None once the session has left ``in_progress``.
    """

    next_item_id: Optional[str]
    session_status: SessionStatus


class CATSessionManager:
    """
    Orchestrator for Computerized Adaptive Testing sessions.

    Manages:
    - Session creation: config validation, pool snapshot, starting ability
    - Turn processing: marking, MLE re-estimation, stopping rules, next item
    - Result freezing on completion or abort
    - Recovery of sessions from the store after a restart
    """

    def __init__(
        self,
        pool_provider: ItemPoolProvider,
        store: Optional[SessionStore] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self._pool_provider = pool_provider
        self._store: SessionStore = store if store is not None else InMemorySessionStore()
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))

        # Guards _session_locks and _states
        self._registry_lock = threading.Lock()
        self._session_locks: Dict[str, threading.Lock] = {}
        self._states: Dict[str, SessionState] = {}

    @property
    def store(self) -> SessionStore:
        return self._store

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def start_session(
        self,
        pool_scope: Union[PoolScope, Mapping[str, Any]],
        marking_config: ConfigInput = None,
        cat_config: ConfigInput = None,
        previous_results: Optional[Iterable[PreviousResult]] = None,
    ) -> StartedSession:
        """
        Create a session and issue its first item.

        Args:
            pool_scope: Subject and optional topics to draw items from.
            marking_config: MarkingConfig, a mapping of its fields, or None
                for defaults.
            cat_config: CATConfig, a mapping of its fields, or None for
                defaults.
            previous_results: Earlier results for the same learner. Each is a
                SessionResult, a mapping with ``final_ability_estimate`` (and
                optionally ``final_standard_error``), or a mapping with a
                historical ``percentage`` score in [0, 1]. When given, they
                replace ``starting_theta`` as the starting ability.

        Returns:
            StartedSession with the new session ID and first item ID.

        Raises:
            InvalidConfigError: If either config is invalid or the filtered
                pool has no usable items. No session is created.
        """
        scope = _coerce_scope(pool_scope)
        marking = _coerce_config(MarkingConfig, marking_config)
        config = _coerce_config(CATConfig, cat_config)
        _validate_cat_config(config)

        items = self._fetch_pool(scope, config)

        starting_theta = config.starting_theta
        if previous_results:
            starting_theta = _prior_from_previous_results(
                previous_results, config.starting_theta
            )
        starting_theta = max(config.theta_min, min(config.theta_max, starting_theta))

        first_item = select_next_item(
            theta=starting_theta,
            candidate_pool=items,
            asked_item_ids=(),
            method=config.item_selection_method,
            model=config.algorithm,
        )
        # A non-empty pool always yields an item
        assert first_item is not None

        session_id = self._id_factory()
        event = SessionStarted(
            session_id=session_id,
            started_at=utc_now(),
            pool_scope=scope,
            marking_config=marking,
            cat_config=config,
            items=tuple(items),
            starting_theta=starting_theta,
            starting_se=config.starting_se,
            first_item_id=first_item.id,
        )
        self._store.create(session_id, event)
        state = SessionState.start(event)
        with self._registry_lock:
            self._states[session_id] = state

        logger.info(
            f"Started CAT session {session_id}: subject={scope.subject}, "
            f"pool={len(items)} items, model={config.algorithm.value}, "
            f"theta={starting_theta:.3f}, first item {first_item.id}",
            extra={"item_id": first_item.id, "theta": starting_theta},
        )
        return StartedSession(session_id=session_id, first_item_id=first_item.id)

    def submit_answer(
        self,
        session_id: str,
        item_id: str,
        response: Any,
        responded_at_offset_ms: Optional[int] = None,
    ) -> TurnOutcome:
        """
        Record a response to the current item and advance the session.

        Args:
            session_id: Session being answered.
            item_id: ID of the item being answered; must be the current item.
            response: None (unanswered or timed out), a pre-graded bool, or
                the answer text.
            responded_at_offset_ms: Milliseconds since session start. Measured
                from the server clock when omitted.

        Returns:
            TurnOutcome with the next item (None once terminal) and status.

        Raises:
            SessionNotFoundError: If the session does not exist.
            SessionNotInProgressError: If the session is completed or aborted.
            ItemMismatchError: If item_id is not the current item.
            InvalidResponseError: If a text response is given for an item with
                no answer key.
        """
        with _session_context(session_id):
            return self._run_turn(
                session_id,
                lambda state: self._answer_turn(
                    state, item_id, response, responded_at_offset_ms
                ),
            )

    def get_result(self, session_id: str) -> SessionResult:
        """
        Return the frozen result of a terminal session.

        Repeated calls return the same value.

        Raises:
            SessionNotFoundError: If the session does not exist.
            SessionStillInProgressError: If the session is still in progress.
        """
        state = self._snapshot(session_id)
        if not state.is_terminal:
            raise SessionStillInProgressError(session_id)
        assert state.result is not None
        return state.result

    def abort_session(self, session_id: str) -> SessionStatus:
        """
        Abort an in-progress session and freeze its result.

        Aborting an already aborted session does nothing.

        Raises:
            SessionNotFoundError: If the session does not exist.
            SessionNotInProgressError: If the session already completed.
        """
        with _session_context(session_id):
            return self._run_turn(session_id, self._abort_turn)

    def get_session(self, session_id: str) -> SessionState:
        """
        Return the current snapshot of a session.

        Raises:
            SessionNotFoundError: If the session does not exist.
        """
        return self._snapshot(session_id)

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def _answer_turn(
        self,
        state: SessionState,
        item_id: str,
        response: Any,
        responded_at_offset_ms: Optional[int],
    ) -> TurnOutcome:
        session_id = state.session_id
        if state.is_terminal:
            raise SessionNotInProgressError(session_id, state.status.value)
        if item_id in state.asked_item_ids or item_id != state.current_item_id:
            raise ItemMismatchError(session_id, item_id, state.current_item_id)

        item = state.item(item_id)
        assert item is not None
        config = state.cat_config

        try:
            correct = grade_response(item, response)
        except ValueError as exc:
            raise InvalidResponseError(session_id, item_id, str(exc)) from exc
        unanswered = correct is None
        score = score_response(item, correct, unanswered, state.marking_config)

        if responded_at_offset_ms is None:
            responded_at_offset_ms = elapsed_ms(state.started_at, utc_now())

        estimate = estimate_ability_mle(
            history=self._estimation_history(state, item, correct),
            prior_theta=state.ability_estimate,
            prior_se=state.standard_error,
            model=config.algorithm,
            theta_range=(config.theta_min, config.theta_max),
            max_iterations=config.max_iterations,
            tolerance=config.convergence_tolerance,
            non_mixed_strategy=config.non_mixed_strategy,
            non_mixed_step=config.non_mixed_step,
        )
        if estimate.bound_hit:
            logger.warning(
                f"Ability estimate reached the bound of "
                f"[{config.theta_min}, {config.theta_max}] "
                f"(mixed_pattern={estimate.mixed_pattern})",
                extra={"item_id": item_id, "theta": estimate.theta},
            )

        asked = AskedItem(
            item_id=item_id,
            response=response,
            correct=correct,
            score_awarded=score,
            responded_at_offset_ms=responded_at_offset_ms,
            theta_after=estimate.theta,
            se_after=estimate.standard_error,
            bound_hit=estimate.bound_hit,
        )

        # Evaluate against a provisional snapshot; nothing is committed yet
        provisional = state.apply(AnswerRecorded(asked_item=asked))
        stop, reason = should_terminate(provisional, config)

        next_item: Optional[Item] = None
        if not stop:
            next_item = select_next_item(
                theta=estimate.theta,
                candidate_pool=state.items,
                asked_item_ids=provisional.asked_item_ids,
                method=config.item_selection_method,
                model=config.algorithm,
            )
            if next_item is None:
                reason = TerminationReason.POOL_EXHAUSTED

        event = AnswerRecorded(
            asked_item=asked,
            next_item_id=next_item.id if next_item else None,
            termination_reason=reason,
            result=self._build_result(provisional, reason) if reason else None,
        )
        new_state = self._commit(state, event)

        logger.info(
            f"Turn {new_state.items_asked}: item {item_id} "
            f"correct={correct}, score={score:+g}, "
            f"theta={estimate.theta:.3f}, SE={estimate.standard_error:.3f}"
            + (f", stopping ({reason.value})" if reason else ""),
            extra={
                "item_id": item_id,
                "theta": estimate.theta,
                "standard_error": estimate.standard_error,
                "items_asked": new_state.items_asked,
                "termination_reason": reason.value if reason else None,
            },
        )
        return TurnOutcome(
            next_item_id=new_state.current_item_id,
            session_status=new_state.status,
        )

    def _abort_turn(self, state: SessionState) -> SessionStatus:
        if state.status is SessionStatus.ABORTED:
            return SessionStatus.ABORTED
        if state.status is SessionStatus.COMPLETED:
            raise SessionNotInProgressError(state.session_id, state.status.value)

        event = SessionAborted(
            result=self._build_result(state, TerminationReason.ABORTED)
        )
        self._commit(state, event)

        logger.info(
            f"Session aborted after {state.items_asked} items",
            extra={
                "items_asked": state.items_asked,
                "termination_reason": TerminationReason.ABORTED.value,
            },
        )
        return SessionStatus.ABORTED

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run_turn(self, session_id: str, turn: Callable[[SessionState], T]) -> T:
        """
        Run ``turn`` against the session under its lock.

        A turn computed from a snapshot that another writer has since moved
        past is rejected by the store. The snapshot is then rebuilt from the
        stored log and the turn re-validated against it.
        """
        attempt = 1
        while True:
            try:
                with self._locked(session_id) as state:
                    return turn(state)
            except StaleSessionError:
                self._discard(session_id)
                if attempt >= COMMIT_ATTEMPTS:
                    raise
                logger.warning(
                    f"Session {session_id} was advanced by another writer; "
                    f"reloading from the store (attempt {attempt})"
                )
                attempt += 1

    @contextmanager
    def _locked(self, session_id: str) -> Iterator[SessionState]:
        """
        Yield the session's snapshot while holding its lock.

        Terminal sessions never change again, so they are yielded without
        taking (or creating) a lock.
        """
        state = self._snapshot(session_id)
        if state.is_terminal:
            yield state
            return

        with self._lock_for(session_id):
            yield self._snapshot(session_id)

    def _lock_for(self, session_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._session_locks.get(session_id)
            if lock is None:
                lock = threading.Lock()
                self._session_locks[session_id] = lock
            return lock

    def _snapshot(self, session_id: str) -> SessionState:
        """Return the cached snapshot, replaying the stored log on a miss."""
        with self._registry_lock:
            state = self._states.get(session_id)
        if state is not None:
            return state

        events = self._store.load(session_id)
        if not events:
            raise SessionNotFoundError(session_id)

        state = SessionState.replay(events)
        if state.is_terminal:
            self._release(session_id)
            return state
        with self._registry_lock:
            state = self._states.setdefault(session_id, state)
        logger.debug(
            f"Restored session {session_id} from {len(events)} stored events "
            f"(items={state.items_asked})"
        )
        return state

    def _commit(self, state: SessionState, event: SessionEvent) -> SessionState:
        """
        Append ``event`` to the store and move the cached snapshot past it.

        The append only succeeds if the stored log is still at the version
        ``state`` was built from.
        """
        session_id = state.session_id
        new_state = state.apply(event)
        self._store.append(session_id, event, expected_sequence=state.version)
        if new_state.is_terminal:
            self._release(session_id)
        else:
            with self._registry_lock:
                self._states[session_id] = new_state
        return new_state

    def _discard(self, session_id: str) -> None:
        with self._registry_lock:
            self._states.pop(session_id, None)

    def _release(self, session_id: str) -> None:
        """Forget a terminal session; later reads replay it from the store."""
        with self._registry_lock:
            self._states.pop(session_id, None)
            self._session_locks.pop(session_id, None)

    def _fetch_pool(self, scope: PoolScope, config: CATConfig) -> List[Item]:
        candidates = self._pool_provider.fetch_candidates(
            scope, allowed_types=config.allowed_item_types
        )

        if config.allowed_difficulty_bands is not None:
            bands = set(config.allowed_difficulty_bands)
            candidates = [item for item in candidates if item.difficulty_band in bands]

        seen: Dict[str, Item] = {}
        for item in candidates:
            if item.id in seen:
                raise InvalidConfigError(
                    f"Item pool for subject {scope.subject!r} contains duplicate "
                    f"item ID {item.id!r}"
                )
            seen[item.id] = item

        usable = [
            item for item in candidates if item.irt_parameters.discrimination > 0
        ]
        dropped = len(candidates) - len(usable)
        if dropped:
            logger.warning(
                f"Dropped {dropped} item(s) with non-positive discrimination "
                f"from the pool for subject {scope.subject!r}"
            )

        if not usable:
            raise InvalidConfigError(
                f"No usable items for subject {scope.subject!r} after applying "
                f"topic, item type and difficulty band filters"
            )
        return usable

    @staticmethod
    def _estimation_history(
        state: SessionState, item: Item, correct: Optional[bool]
    ) -> ResponseHistory:
        """Build (parameters, correct) pairs for every turn including this one."""
        unanswered_as_incorrect = state.cat_config.unanswered_as_incorrect
        turns: List[Tuple[Item, Optional[bool]]] = [
            (state.item(asked.item_id), asked.correct) for asked in state.asked_items
        ]
        turns.append((item, correct))

        history = []
        for turn_item, turn_correct in turns:
            if turn_correct is None:
                if not unanswered_as_incorrect:
                    continue
                turn_correct = False
            history.append((turn_item.irt_parameters, turn_correct))
        return history

    @staticmethod
    def _build_result(
        state: SessionState, reason: TerminationReason
    ) -> SessionResult:
        """
        Freeze the result of a session that ends in ``state``.

        ``state`` already holds the final turn, if any.
        """
        config = state.cat_config
        marking = state.marking_config
        asked = state.asked_items
        items = [state.item(a.item_id) for a in asked]

        theta = state.ability_estimate
        standard_error = state.standard_error
        percentile = theta_to_percentile(
            theta,
            population_mean=config.population_mean,
            population_sd=config.population_sd,
        )
        raw_score = sum(a.score_awarded for a in asked)

        if marking.scoring_method is ScoringMethod.PERCENTILE:
            reported_score = float(percentile)
        else:
            reported_score = raw_score

        average_response_time_ms = (
            asked[-1].responded_at_offset_ms / len(asked) if asked else 0.0
        )

        result = SessionResult(
            final_ability_estimate=theta,
            final_standard_error=standard_error,
            percentile=percentile,
            raw_score=raw_score,
            max_possible_score=max_possible_score(items, marking),
            items_asked=len(asked),
            termination_reason=reason,
            reported_score=reported_score,
            correct_count=sum(1 for a in asked if a.correct),
            unanswered_count=sum(1 for a in asked if a.is_unanswered),
            confidence=standard_error_to_confidence(standard_error),
            ability_progression=tuple(a.theta_after for a in asked),
            average_response_time_ms=average_response_time_ms,
        )

        logger.info(
            f"Session {state.session_id} finalized: theta={theta:.3f}, "
            f"SE={standard_error:.3f}, percentile={percentile}, "
            f"raw={raw_score:g}/{result.max_possible_score:g}, "
            f"items={len(asked)}, reason={reason.value}"
        )
        return result


@contextmanager
def _session_context(session_id: str) -> Iterator[None]:
    """Bind the session ID to log records emitted inside the block."""
    token = session_id_context.set(session_id)
    try:
        yield
    finally:
        session_id_context.reset(token)


def _coerce_scope(pool_scope: Union[PoolScope, Mapping[str, Any]]) -> PoolScope:
    if isinstance(pool_scope, PoolScope):
        return pool_scope
    try:
        return PoolScope.from_dict(pool_scope)
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidConfigError(f"Invalid pool scope: {exc}") from exc


def _coerce_config(model_cls: type, value: ConfigInput) -> Any:
    """Validate a config given as a model, a mapping or None."""
    if value is None:
        return model_cls()
    if isinstance(value, model_cls):
        return value
    if isinstance(value, BaseModel):
        value = value.model_dump()
    try:
        return model_cls.model_validate(value)
    except ValidationError as exc:
        raise InvalidConfigError(
            f"Invalid {model_cls.__name__}: {exc.error_count()} validation error(s): "
            + "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in exc.errors()
            )
        ) from exc


def _validate_cat_config(config: CATConfig) -> None:
    """Cross-field rules a session needs before it can start."""
    if config.min_items < 1:
        raise InvalidConfigError(f"min_items must be at least 1, got {config.min_items}")
    if config.min_items > config.max_items:
        raise InvalidConfigError(
            f"min_items ({config.min_items}) must not exceed "
            f"max_items ({config.max_items})"
        )
    if config.se_threshold <= 0:
        raise InvalidConfigError(
            f"se_threshold must be positive, got {config.se_threshold}"
        )
    if config.theta_min >= config.theta_max:
        raise InvalidConfigError(
            f"theta_min ({config.theta_min}) must be less than "
            f"theta_max ({config.theta_max})"
        )


def _prior_from_previous_results(
    previous_results: Iterable[PreviousResult], default_theta: float
) -> float:
    """Precision-weighted starting theta from a learner's earlier results."""
    thetas: List[float] = []
    ses: List[float] = []
    for previous in previous_results:
        if isinstance(previous, SessionResult):
            thetas.append(previous.final_ability_estimate)
            ses.append(previous.final_standard_error)
        elif "final_ability_estimate" in previous:
            thetas.append(float(previous["final_ability_estimate"]))
            ses.append(float(previous.get("final_standard_error", 1.0)))
        elif "percentage" in previous:
            try:
                thetas.append(percentage_to_theta(float(previous["percentage"])))
            except (TypeError, ValueError) as exc:
                raise InvalidConfigError(f"Invalid previous percentage: {exc}") from exc
            ses.append(PERCENTAGE_PRIOR_SE)
        else:
            raise InvalidConfigError(
                "previous_results entries need final_ability_estimate or percentage"
            )

    theta, _ = compute_prior_theta(thetas, ses, default=(default_theta, 1.0))
    return theta
