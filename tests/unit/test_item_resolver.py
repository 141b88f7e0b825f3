"""
STOCKCOUNT Item Resolver Tests
"""

import pytest
import pytest_asyncio

from services.catalog.embeddings import HashingEmbedder
from services.catalog.item_resolver import ItemResolver
from services.catalog.similarity_search import CatalogIndex
from stockcount.exceptions import AmbiguousMatch, NotFound, SearchTransportError
from stockcount.types import CatalogItem

from tests.fixtures.fakes import FakeSearch


A = CatalogItem(1, "oat milk", 6, "cartons")
B = CatalogItem(2, "goat milk", 2, "cartons")
C = CatalogItem(3, "milk", 8, "gallons")


class TestResolve:
    """Tests for acceptance and rejection."""

    @pytest.mark.asyncio
    async def test_best_above_threshold(self):
        search = FakeSearch({"oat milk": [(A, 0.92), (B, 0.65), (C, 0.5)]})
        assert await ItemResolver(search).resolve("oat milk") == A

    @pytest.mark.asyncio
    async def test_unsorted_backend_results(self):
        search = FakeSearch({"milk": [(A, 0.7), (C, 0.99)]})
        assert (await ItemResolver(search).resolve("milk")).name == "milk"

    @pytest.mark.asyncio
    async def test_exactly_at_threshold_accepted(self):
        search = FakeSearch({"milk": [(C, 0.8)]})
        assert await ItemResolver(search).resolve("milk") == C

    @pytest.mark.asyncio
    async def test_below_threshold_is_ambiguous(self):
        search = FakeSearch({"milk": [(A, 0.55), (B, 0.5)]})

        with pytest.raises(AmbiguousMatch) as exc_info:
            await ItemResolver(search).resolve("milk")

        assert exc_info.value.suggestions == ["oat milk", "goat milk"]
        assert exc_info.value.best_score == 0.55

    @pytest.mark.asyncio
    async def test_no_candidates(self):
        with pytest.raises(NotFound):
            await ItemResolver(FakeSearch()).resolve("kale")

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self):
        search = FakeSearch()
        search.error = SearchTransportError("down")
        with pytest.raises(SearchTransportError):
            await ItemResolver(search).resolve("milk")

    @pytest.mark.asyncio
    async def test_top_k_passed_through(self):
        search = FakeSearch({"milk": [(A, 0.9), (B, 0.8), (C, 0.7)]})
        resolver = ItemResolver(search, top_k=2)
        best, alternatives = await resolver.resolve_with_alternatives("milk")
        assert best.item == A
        assert [m.item for m in alternatives] == [B]
        assert search.queries == ["milk"]


# =============================================================================
# Over the in-process index
# =============================================================================


@pytest_asyncio.fixture
async def resolver():
    index = CatalogIndex(HashingEmbedder())
    await index.rebuild([
        CatalogItem(1, "whole milk", 8, "gallons"),
        CatalogItem(2, "oat milk", 6, "cartons"),
        CatalogItem(3, "sugar", 25, "pounds"),
    ])
    return ItemResolver(index)


class TestResolveWithIndex:
    """Default thresholds against hashed embeddings."""

    @pytest.mark.asyncio
    async def test_exact_name_accepted(self, resolver):
        assert (await resolver.resolve("oat milk")).name == "oat milk"

    @pytest.mark.asyncio
    async def test_partial_name_is_ambiguous(self, resolver):
        """"milk" is close to both milks but selects neither."""
        with pytest.raises(AmbiguousMatch) as exc_info:
            await resolver.resolve("milk")

        assert sorted(exc_info.value.suggestions) == ["oat milk", "whole milk"]
        assert exc_info.value.best_score < resolver.acceptance_threshold

    @pytest.mark.asyncio
    async def test_unrelated_phrase_not_found(self, resolver):
        with pytest.raises(NotFound):
            await resolver.resolve("kombucha")
