"""
Pytest fixtures for STOCKCOUNT testing.

Usage:
    # In test files, fixtures are automatically available:
    async def test_add(pipeline, store, events):
        await pipeline.handle_utterance("add 5 pounds of coffee beans")
        assert events.of_type("command-processed")
"""

import pytest
import pytest_asyncio

from services.catalog.item_resolver import ItemResolver
from services.inventory.store import InventoryStore
from services.nlp.rule_extractor import RuleBasedCommandExtractor
from stockcount.session_pipeline import SessionPipeline

from tests.fixtures.fakes import EventCollector, FakeClock, FakeSearch


@pytest.fixture
def store():
    """In-memory inventory with a small catalog."""
    inventory = InventoryStore(":memory:")
    inventory.connect()
    inventory.add_item("milk", 8, "gallons", "dairy", 2)
    inventory.add_item("coffee beans", 40, "pounds", "coffee", 10)
    inventory.add_item("sugar", 25, "pounds", "pantry", 5)
    inventory.add_item("napkins", 20, "packs", "supplies", 5)
    yield inventory
    inventory.close()


@pytest.fixture
def search(store) -> FakeSearch:
    """Each catalog item matches its own name exactly."""
    fake = FakeSearch()
    for item in store.list_items():
        fake.set(item.name, [(item, 0.97)])
    return fake


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def events() -> EventCollector:
    return EventCollector()


@pytest_asyncio.fixture
async def pipeline(store, search, events, clock):
    """Session pipeline over the rule-based extractor, not started."""
    session = SessionPipeline(
        "test-session",
        extractor=RuleBasedCommandExtractor(),
        resolver=ItemResolver(search),
        store=store,
        emit=events,
        clock=clock,
    )
    yield session
    await session.close()
