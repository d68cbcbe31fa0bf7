"""Protocol interfaces for swappable collaborators.

The cache service only ever talks to these structural contracts, so any
object with matching methods (Redis adapters, in-memory fakes, another
vector database) can be plugged in without inheritance.

Usage:
    ```python
    from adaptive_cache.protocols import FastStore, SimilarityStore

    fast: FastStore = RedisFastStore.create()
    similar: SimilarityStore = RedisSimilarityStore.create(dimension=768)
    ```
"""

from .embedding_provider import EmbeddingProvider
from .fast_store import FastStore
from .metrics_store import MetricsStore
from .similarity_store import SimilarityStore

__all__ = [
    "EmbeddingProvider",
    "FastStore",
    "MetricsStore",
    "SimilarityStore",
]
