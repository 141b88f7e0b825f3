"""
STOCKCOUNT Test Fixtures Package.

Fakes that stand in for collaborators the pipeline only reaches through a
narrow interface:
- FakeClock: Manually advanced monotonic clock
- FakeSearch: Similarity search with fixed scores per phrase
- EventCollector: Async event sink that records session events
- ScriptedExtractor: Command extractor with preset candidates per utterance

Usage:
    from tests.fixtures import FakeSearch, EventCollector
"""

from tests.fixtures.fakes import (
    EventCollector,
    FakeClock,
    FakeSearch,
    ScriptedExtractor,
    wait_for,
)

__all__ = ["EventCollector", "FakeClock", "FakeSearch", "ScriptedExtractor", "wait_for"]
