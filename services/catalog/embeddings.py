"""
STOCKCOUNT Text Embeddings

Vector embeddings for item names and spoken item phrases.

Backends:
- HashingEmbedder: deterministic feature hashing of words and character
  trigrams. Offline, no model download; good enough for short item names.
- OpenAIEmbedder: OpenAI embeddings API (requires the openai package and
  OPENAI_API_KEY).

All vectors are L2-normalized, so a dot product is the cosine similarity.
"""

from __future__ import annotations

import logging
import os
import re
import zlib
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

import numpy as np

from stockcount.exceptions import SearchTransportError

logger = logging.getLogger("stockcount.embeddings")


__all__ = [
    "Embedder",
    "HashingEmbedder",
    "OpenAIEmbedder",
    "preprocess_text",
    "create_embedder",
]


_STOP_WORDS = re.compile(r"\b(?:the|of|a|an)\b")
_NUMBER_UNIT = re.compile(
    r"(\d+)\s*(ounce|oz|pound|lb|liter|l|gram|g|kilo|kg|ml|cm|m)\b", re.I
)


def preprocess_text(text: str) -> str:
    """Normalize an item phrase before embedding.

    Lowercases, drops articles, glues numbers to their units ("12 oz" ->
    "12oz") and strips everything but letters, digits and spaces.
    """
    text = text.lower()
    text = _STOP_WORDS.sub("", text)
    text = _NUMBER_UNIT.sub(r"\1\2", text)
    text = re.sub(r"[^a-z0-9 ]", "", text)
    return re.sub(r"\s+", " ", text).strip()


def _normalize(vector: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(vector)
    if norm == 0:
        return vector
    return vector / norm


class Embedder(ABC):
    """Maps text to a fixed-size unit vector."""

    dimensions: int

    @abstractmethod
    async def embed(self, text: str) -> np.ndarray:
        """Embed one text."""

    async def embed_batch(self, texts: Sequence[str]) -> np.ndarray:
        """Embed many texts; one row per text."""
        if not texts:
            return np.zeros((0, self.dimensions), dtype=np.float32)
        rows = [await self.embed(text) for text in texts]
        return np.vstack(rows)


class HashingEmbedder(Embedder):
    """Feature-hashing embedder over word and character trigram features."""

    WORD_WEIGHT = 1.0
    TRIGRAM_WEIGHT = 0.5

    def __init__(self, dimensions: int = 256):
        self.dimensions = dimensions

    def _features(self, text: str) -> List[tuple]:
        features = []
        for word in preprocess_text(text).split():
            features.append(("w:" + word, self.WORD_WEIGHT))
            padded = f"#{word}#"
            for i in range(len(padded) - 2):
                features.append(("c:" + padded[i:i + 3], self.TRIGRAM_WEIGHT))
        return features

    def embed_sync(self, text: str) -> np.ndarray:
        vector = np.zeros(self.dimensions, dtype=np.float32)
        for feature, weight in self._features(text):
            digest = zlib.crc32(feature.encode("utf-8"))
            index = digest % self.dimensions
            sign = 1.0 if (digest >> 31) & 1 == 0 else -1.0
            vector[index] += sign * weight
        return _normalize(vector)

    async def embed(self, text: str) -> np.ndarray:
        return self.embed_sync(text)


class OpenAIEmbedder(Embedder):
    """
    OpenAI embeddings API client.

    Requires OPENAI_API_KEY environment variable or an explicit key.
    """

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        dimensions: int = 256,
        api_key: Optional[str] = None,
    ):
        self.model = model
        self.dimensions = dimensions
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self._client = None

    async def _ensure_client(self):
        """Lazily initialize the client."""
        if self._client is not None:
            return

        if not self.api_key:
            raise SearchTransportError("OPENAI_API_KEY not set", service_name="openai-embeddings")

        try:
            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(api_key=self.api_key)
        except ImportError:
            raise SearchTransportError("openai package not installed", service_name="openai-embeddings")

    async def embed_batch(self, texts: Sequence[str]) -> np.ndarray:
        if not texts:
            return np.zeros((0, self.dimensions), dtype=np.float32)

        await self._ensure_client()
        try:
            response = await self._client.embeddings.create(
                model=self.model,
                input=[preprocess_text(t) or t for t in texts],
                dimensions=self.dimensions,
            )
        except Exception as e:
            logger.error(f"OpenAI embeddings call failed: {e}")
            raise SearchTransportError(str(e), service_name="openai-embeddings") from e

        rows = [np.asarray(d.embedding, dtype=np.float32) for d in response.data]
        return np.vstack([_normalize(row) for row in rows])

    async def embed(self, text: str) -> np.ndarray:
        return (await self.embed_batch([text]))[0]


def create_embedder(catalog_config) -> Embedder:
    """Build the embedder named in a CatalogConfig."""
    if catalog_config.embedder == "openai":
        return OpenAIEmbedder(
            model=catalog_config.embedding_model,
            dimensions=catalog_config.dimensions,
        )
    return HashingEmbedder(dimensions=catalog_config.dimensions)
