"""
STOCKCOUNT Similarity Search

Top-K catalog lookup by cosine similarity between the embedded spoken phrase
and the embedded item names. Results are ordered by descending similarity
and filtered at a retrieval floor.

Backends:
- CatalogIndex: in-process numpy matrix, rebuilt from the inventory store
- HttpSimilaritySearch: remote vector search RPC over HTTP (aiohttp), e.g. a
  Postgres/pgvector "match items" function

Similarity everywhere is cosine similarity clipped to [0, 1].
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

import aiohttp
import numpy as np

from stockcount.exceptions import SearchTransportError
from stockcount.types import CatalogItem, CatalogItemMatch

from .embeddings import Embedder

logger = logging.getLogger("stockcount.search")


__all__ = [
    "SimilaritySearch",
    "CatalogIndex",
    "HttpSimilaritySearch",
    "DEFAULT_SIMILARITY_FLOOR",
]


DEFAULT_SIMILARITY_FLOOR = 0.5


class SimilaritySearch(Protocol):
    """Anything that can rank catalog items against a phrase."""

    async def search(self, text: str, top_k: int = 5) -> List[CatalogItemMatch]:
        ...


class CatalogIndex:
    """In-process embedding index over the catalog."""

    def __init__(self, embedder: Embedder, floor: float = DEFAULT_SIMILARITY_FLOOR):
        self.embedder = embedder
        self.floor = floor
        self._items: List[CatalogItem] = []
        self._matrix = np.zeros((0, embedder.dimensions), dtype=np.float32)

    def __len__(self) -> int:
        return len(self._items)

    async def rebuild(self, items: Sequence[CatalogItem]) -> None:
        """Re-embed the whole catalog."""
        self._items = list(items)
        self._matrix = await self.embedder.embed_batch([item.name for item in self._items])
        logger.info(f"Catalog index rebuilt with {len(self._items)} items")

    async def add(self, item: CatalogItem) -> None:
        vector = await self.embedder.embed(item.name)
        self._items.append(item)
        self._matrix = np.vstack([self._matrix, vector[np.newaxis, :]])

    async def search(self, text: str, top_k: int = 5) -> List[CatalogItemMatch]:
        if not self._items or not text.strip():
            return []

        query = await self.embedder.embed(text)
        scores = np.clip(self._matrix @ query, 0.0, 1.0)

        order = np.argsort(-scores, kind="stable")[:top_k]
        return [
            CatalogItemMatch(item=self._items[i], similarity_score=float(scores[i]))
            for i in order
            if scores[i] > self.floor
        ]


class HttpSimilaritySearch:
    """
    Remote similarity search over HTTP.

    POSTs ``{query_embedding, match_threshold, match_count}`` and expects a
    JSON array of rows, each either ``{"item": {...}, "similarity": s}`` or a
    flat item row with a ``similarity`` column.
    """

    def __init__(
        self,
        url: str,
        embedder: Embedder,
        api_key: Optional[str] = None,
        floor: float = DEFAULT_SIMILARITY_FLOOR,
        timeout: float = 10.0,
    ):
        self.url = url
        self.embedder = embedder
        self.api_key = api_key
        self.floor = floor
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def search(self, text: str, top_k: int = 5) -> List[CatalogItemMatch]:
        if not text.strip():
            return []

        vector = await self.embedder.embed(text)
        payload = {
            "query_embedding": [float(x) for x in vector],
            "match_threshold": self.floor,
            "match_count": top_k,
        }

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.url,
                    json=payload,
                    headers=self._headers(),
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status != 200:
                        body = await response.text()
                        raise SearchTransportError(
                            f"Similarity search returned HTTP {response.status}: {body[:200]}",
                            service_name="similarity-search",
                            status=response.status,
                        )
                    rows = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise SearchTransportError(str(e), service_name="similarity-search") from e
        except asyncio.TimeoutError as e:
            raise SearchTransportError("Similarity search timed out", service_name="similarity-search") from e

        if not isinstance(rows, list):
            raise SearchTransportError("Similarity search returned a non-list body", service_name="similarity-search")

        matches = [m for m in (self._parse_row(row) for row in rows) if m is not None]
        matches.sort(key=lambda m: m.similarity_score, reverse=True)
        return [m for m in matches if m.similarity_score > self.floor][:top_k]

    @staticmethod
    def _parse_row(row: Any) -> Optional[CatalogItemMatch]:
        if not isinstance(row, dict):
            return None
        data = row.get("item") if isinstance(row.get("item"), dict) else row
        try:
            item = CatalogItem(
                id=int(data["id"]),
                name=str(data["name"]),
                quantity=float(data.get("quantity") or 0.0),
                unit=str(data.get("unit") or "units"),
                category=str(data.get("category") or ""),
                threshold=(
                    float(data["threshold"]) if data.get("threshold") is not None else None
                ),
            )
            similarity = float(row["similarity"])
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Skipping malformed similarity row: {row!r}")
            return None
        return CatalogItemMatch(item=item, similarity_score=min(1.0, max(0.0, similarity)))
