"""Repository layer for data access.

Concrete adapters for the collaborator protocols. Each one translates its
backend's exceptions into ``AdapterUnavailableError`` or ``EmbeddingError``
so the service layer only has to know about the cache's own taxonomy.
"""

from adaptive_cache.protocols import EmbeddingProvider, FastStore, MetricsStore, SimilarityStore

from .ollama_embedding_provider import OllamaEmbeddingProvider
from .redis_fast_store import RedisFastStore
from .redis_metrics_store import RedisMetricsStore
from .redis_similarity_store import RedisSimilarityStore

__all__ = [
    "EmbeddingProvider",
    "FastStore",
    "MetricsStore",
    "SimilarityStore",
    "OllamaEmbeddingProvider",
    "RedisFastStore",
    "RedisMetricsStore",
    "RedisSimilarityStore",
]
