"""
STOCKCOUNT Catalog Services

Embedding-based lookup of spoken item names in the inventory catalog.
"""

from .embeddings import Embedder, HashingEmbedder, OpenAIEmbedder, create_embedder
from .item_resolver import ItemResolver
from .similarity_search import CatalogIndex, HttpSimilaritySearch, SimilaritySearch

__all__ = [
    "Embedder",
    "HashingEmbedder",
    "OpenAIEmbedder",
    "create_embedder",
    "ItemResolver",
    "CatalogIndex",
    "HttpSimilaritySearch",
    "SimilaritySearch",
]
