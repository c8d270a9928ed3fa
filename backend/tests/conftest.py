"""
Pytest configuration and shared fixtures for testing.
"""
import sys
from pathlib import Path

# Add project root (for libs/) and backend/ (for assessment/) to the path.
# This must happen before importing from assessment/, which imports from libs/.
backend_root = Path(__file__).parent.parent
project_root = backend_root.parent
for path in (project_root, backend_root):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from typing import Callable, Iterator, List, Optional, Sequence  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from assessment.core.cat.engine import CATSessionManager  # noqa: E402
from assessment.core.cat.irt_models import IRTParameters  # noqa: E402
from assessment.core.cat.item_pool import InMemoryItemPoolProvider, Item  # noqa: E402
from assessment.core.cat.session_store import InMemorySessionStore  # noqa: E402
from assessment.main import create_application  # noqa: E402
from libs.domain_types import DifficultyBand, ItemType  # noqa: E402

SUBJECT = "math"

ItemFactory = Callable[..., Item]


def build_item(
    item_id: str,
    difficulty: float,
    discrimination: float = 1.0,
    guessing: float = 0.0,
    band: DifficultyBand = DifficultyBand.MEDIUM,
    item_type: ItemType = ItemType.SINGLE_RESPONSE,
    correct_answers: Sequence[str] = (),
    topic: Optional[str] = None,
) -> Item:
    return Item(
        id=item_id,
        item_type=item_type,
        difficulty_band=band,
        irt_parameters=IRTParameters(
            discrimination=discrimination, difficulty=difficulty, guessing=guessing
        ),
        correct_answers=tuple(correct_answers),
        topic=topic,
    )


def linear_difficulties(count: int = 10, low: float = -2.0, high: float = 2.0) -> List[float]:
    """Difficulties evenly spaced from low to high inclusive."""
    step = (high - low) / (count - 1)
    return [low + i * step for i in range(count)]


@pytest.fixture
def item_factory() -> ItemFactory:
    """Factory for synthetic items with explicit IRT parameters."""
    return build_item


@pytest.fixture
def linear_pool() -> List[Item]:
    """Ten items item-00..item-09, a=1, difficulty evenly spaced over [-2, 2]."""
    return [
        build_item(f"item-{i:02d}", difficulty)
        for i, difficulty in enumerate(linear_difficulties())
    ]


@pytest.fixture
def pool_provider(linear_pool) -> InMemoryItemPoolProvider:
    return InMemoryItemPoolProvider({SUBJECT: linear_pool})


@pytest.fixture
def session_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def manager(pool_provider, session_store) -> CATSessionManager:
    return CATSessionManager(pool_provider=pool_provider, store=session_store)


@pytest.fixture
def scope() -> dict:
    return {"subject": SUBJECT}


@pytest.fixture
def client(manager) -> Iterator[TestClient]:
    """Test client serving the shared session manager."""
    app = create_application(session_manager=manager)
    with TestClient(app) as test_client:
        yield test_client
