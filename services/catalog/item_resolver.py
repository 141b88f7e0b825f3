"""
STOCKCOUNT Item Resolver

Resolves a spoken item phrase ("whole milk", "the big cups") to one catalog
item.

Two thresholds apply to the same similarity measure (cosine, in [0, 1]):
the search backend's retrieval floor decides which items are candidates at
all, and the acceptance threshold decides whether the best candidate may be
selected without asking. A best candidate below the acceptance bar is never
picked silently; the candidates come back as suggestions instead.

Usage:
    resolver = ItemResolver(index)
    try:
        item = await resolver.resolve("milk")
    except AmbiguousMatch as e:
        ask_user(e.suggestions)
"""

from __future__ import annotations

import logging
from typing import List, Tuple

from stockcount.exceptions import AmbiguousMatch, NotFound
from stockcount.types import CatalogItem, CatalogItemMatch

from .similarity_search import SimilaritySearch

logger = logging.getLogger("stockcount.resolver")


__all__ = ["ItemResolver"]


class ItemResolver:
    """Spoken phrase -> CatalogItem via similarity search."""

    TOP_K = 5
    ACCEPTANCE_THRESHOLD = 0.8

    def __init__(
        self,
        search: SimilaritySearch,
        top_k: int = TOP_K,
        acceptance_threshold: float = ACCEPTANCE_THRESHOLD,
    ):
        self.search = search
        self.top_k = top_k
        self.acceptance_threshold = acceptance_threshold

    async def resolve(self, spoken_item: str) -> CatalogItem:
        """Return the accepted catalog item.

        Raises:
            NotFound: Search returned no candidates
            AmbiguousMatch: Best candidate is below the acceptance threshold
            SearchTransportError: Search backend unreachable
        """
        best, _ = await self.resolve_with_alternatives(spoken_item)
        return best.item

    async def resolve_with_alternatives(
        self, spoken_item: str
    ) -> Tuple[CatalogItemMatch, List[CatalogItemMatch]]:
        """Accepted match plus the other candidates, best first."""
        matches = await self.search.search(spoken_item, self.top_k)
        matches = sorted(matches, key=lambda m: m.similarity_score, reverse=True)

        if not matches:
            logger.info(f"No catalog match for {spoken_item!r}")
            raise NotFound(spoken_item)

        best = matches[0]
        if best.similarity_score >= self.acceptance_threshold:
            logger.debug(
                f"Resolved {spoken_item!r} -> {best.item.name!r} "
                f"({best.similarity_score:.2f})"
            )
            return best, matches[1:]

        suggestions = [m.item.name for m in matches]
        logger.info(
            f"Ambiguous item {spoken_item!r}: best {best.item.name!r} "
            f"at {best.similarity_score:.2f} < {self.acceptance_threshold}"
        )
        raise AmbiguousMatch(spoken_item, suggestions, best.similarity_score)
