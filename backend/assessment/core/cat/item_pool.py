"""
Items and item pool providers.

The engine never owns the question bank. A pool provider hands it a snapshot of
scoreable items for a scope; the engine treats those items as read-only for the
lifetime of the session. Providers are passed to the session manager explicitly
so tests can supply deterministic synthetic pools.
"""

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    runtime_checkable,
)

from assessment.core.cat.irt_models import IRTParameters
from libs.domain_types import DifficultyBand, ItemType

logger = logging.getLogger(__name__)

# Fallback parameters for items that were never calibrated, keyed by band
DEFAULT_IRT_PARAMETERS: Dict[DifficultyBand, IRTParameters] = {
    DifficultyBand.EASY: IRTParameters(discrimination=1.0, difficulty=-1.0, guessing=0.1),
    DifficultyBand.MEDIUM: IRTParameters(discrimination=1.2, difficulty=0.0, guessing=0.15),
    DifficultyBand.HARD: IRTParameters(discrimination=1.4, difficulty=1.0, guessing=0.2),
}


@dataclass(frozen=True)
class Item:
    """A scoreable question available to the engine."""

    id: str
    item_type: ItemType
    difficulty_band: DifficultyBand
    irt_parameters: IRTParameters
    correct_answers: Tuple[str, ...] = ()
    topic: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "item_type": self.item_type.value,
            "difficulty_band": self.difficulty_band.value,
            "irt_parameters": {
                "discrimination": self.irt_parameters.discrimination,
                "difficulty": self.irt_parameters.difficulty,
                "guessing": self.irt_parameters.guessing,
            },
            "correct_answers": list(self.correct_answers),
            "topic": self.topic,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Item":
        """
        Build an item from its dict form.

        Items without ``irt_parameters`` get the defaults for their difficulty
        band. ``guessing`` defaults to 0 when absent.
        """
        band = DifficultyBand(data["difficulty_band"])
        raw_params = data.get("irt_parameters")
        if raw_params is None:
            params = DEFAULT_IRT_PARAMETERS[band]
        else:
            params = IRTParameters(
                discrimination=float(raw_params["discrimination"]),
                difficulty=float(raw_params["difficulty"]),
                guessing=float(raw_params.get("guessing") or 0.0),
            )
        return cls(
            id=str(data["id"]),
            item_type=ItemType(data.get("item_type", ItemType.SINGLE_RESPONSE)),
            difficulty_band=band,
            irt_parameters=params,
            correct_answers=tuple(str(a) for a in data.get("correct_answers", ())),
            topic=data.get("topic"),
        )


@dataclass(frozen=True)
class PoolScope:
    """Subject/topic scope an item pool is drawn from.

    An empty ``topics`` tuple means every topic of the subject.
    """

    subject: str
    topics: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {"subject": self.subject, "topics": list(self.topics)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PoolScope":
        return cls(subject=str(data["subject"]), topics=tuple(data.get("topics", ())))


@runtime_checkable
class ItemPoolProvider(Protocol):
    """Source of candidate items for adaptive sessions."""

    def fetch_candidates(
        self,
        scope: PoolScope,
        allowed_types: Optional[Iterable[ItemType]] = None,
    ) -> List[Item]:
        ...


class InMemoryItemPoolProvider:
    """
    Item pool held in process memory, keyed by subject.

    Thread-safe for concurrent reads and additions.
    """

    def __init__(self, items_by_subject: Optional[Mapping[str, Sequence[Item]]] = None):
        self._lock = threading.Lock()
        self._items: Dict[str, List[Item]] = {}
        for subject, items in (items_by_subject or {}).items():
            self.add_items(subject, items)

    def add_items(self, subject: str, items: Iterable[Item]) -> None:
        """Add items to a subject, replacing any existing item with the same ID."""
        with self._lock:
            existing = {item.id: item for item in self._items.get(subject, [])}
            for item in items:
                existing[item.id] = item
            self._items[subject] = list(existing.values())

    def subjects(self) -> List[str]:
        with self._lock:
            return sorted(self._items)

    def fetch_candidates(
        self,
        scope: PoolScope,
        allowed_types: Optional[Iterable[ItemType]] = None,
    ) -> List[Item]:
        """
        Return the items in scope, optionally restricted to some item types.

        Args:
            scope: Subject and optional topic filter.
            allowed_types: Item types to keep. None keeps every type.

        Returns:
            Items ordered by ID.
        """
        with self._lock:
            items = list(self._items.get(scope.subject, []))

        if scope.topics:
            topics = set(scope.topics)
            items = [item for item in items if item.topic in topics]

        if allowed_types is not None:
            types = {ItemType(t) for t in allowed_types}
            items = [item for item in items if item.item_type in types]

        return sorted(items, key=lambda item: item.id)


def load_items_from_json(path: str) -> Dict[str, List[Item]]:
    """
    Load an item bank from a JSON file.

    Expected layout::

        {"subjects": {"<subject>": [<item dict>, ...], ...}}

    Returns:
        Mapping of subject to items.
    """
    with Path(path).open(encoding="utf-8") as fh:
        payload = json.load(fh)

    bank: Dict[str, List[Item]] = {}
    for subject, raw_items in payload.get("subjects", {}).items():
        bank[subject] = [Item.from_dict(raw) for raw in raw_items]

    logger.info(
        f"Loaded item bank from {path}: "
        f"{sum(len(items) for items in bank.values())} items across {len(bank)} subjects"
    )
    return bank
