"""Service layer for business logic.

This layer contains the core cache orchestration. Services depend on
protocols (interfaces), not concrete implementations, making them
testable with in-memory fakes.

Architecture:
    CacheService -> ThresholdController / MetricsRecorder / CacheWarmer
                 -> FastStore / SimilarityStore / EmbeddingProvider / MetricsStore

Usage:
    ```python
    from adaptive_cache.services import CacheService

    # Using factory method (Redis + Ollama from settings)
    cache = CacheService.create()

    # Or manual creation
    cache = CacheService(
        similarity_store=store,
        embedding_provider=provider,
        metrics_store=metrics,
        fast_store=fast,
    )
    ```
"""

from .analytics import TIME_RANGES, recommend_threshold, summarize
from .cache_service import CacheService
from .cache_warmer import CacheWarmer
from .metrics_recorder import MetricsRecorder
from .threshold_controller import ThresholdController, ThresholdSnapshot

__all__ = [
    "TIME_RANGES",
    "CacheService",
    "CacheWarmer",
    "MetricsRecorder",
    "ThresholdController",
    "ThresholdSnapshot",
    "recommend_threshold",
    "summarize",
]
