"""Adaptive Cache - semantic response caching with a self-tuning threshold.

This package caches expensive generative-model responses so semantically
equivalent requests skip recomputation:

Layers:
    - protocols: Interface contracts (FastStore, SimilarityStore, ...)
    - repositories: Redis and embedding-model adapters
    - services: Cache orchestration, threshold control, warming, metrics
    - entities: Domain models (internal)

Usage:
    ```python
    from adaptive_cache import CacheService

    cache = CacheService.create()
    entry = await cache.check_cache("project-42", "What is a semantic cache?")
    ```
"""

from adaptive_cache.config import CacheConfig, configure_logging, get_redis_client, settings
from adaptive_cache.entities import (
    CacheAnalytics,
    CacheEntryEntity,
    CacheStatsSnapshot,
    MetricRecord,
    MetricType,
    Observation,
    SimilarityCandidate,
)
from adaptive_cache.errors import (
    AdapterUnavailableError,
    CacheError,
    ConfigurationError,
    EmbeddingError,
)
from adaptive_cache.protocols import EmbeddingProvider, FastStore, MetricsStore, SimilarityStore
from adaptive_cache.services import CacheService, ThresholdController

__all__ = [
    # Configuration
    "settings",
    "CacheConfig",
    "configure_logging",
    "get_redis_client",
    # Errors
    "CacheError",
    "AdapterUnavailableError",
    "EmbeddingError",
    "ConfigurationError",
    # Protocols (interfaces)
    "EmbeddingProvider",
    "FastStore",
    "MetricsStore",
    "SimilarityStore",
    # Services (business logic)
    "CacheService",
    "ThresholdController",
    # Entities (domain models)
    "CacheAnalytics",
    "CacheEntryEntity",
    "CacheStatsSnapshot",
    "MetricRecord",
    "MetricType",
    "Observation",
    "SimilarityCandidate",
]
