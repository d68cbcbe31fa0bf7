"""Domain entities for internal representation.

These are pure frozen dataclasses passed between the service layer and
the repositories. Nothing here talks to Redis or the embedding model.
"""

from .analytics import CacheAnalytics, CacheStatsSnapshot, SimilarityStoreStats, TopQuery
from .cache_entry import CacheEntryEntity
from .metric_record import MetricRecord, MetricType
from .observation import Observation
from .similarity_candidate import SimilarityCandidate

__all__ = [
    "CacheAnalytics",
    "CacheEntryEntity",
    "CacheStatsSnapshot",
    "MetricRecord",
    "MetricType",
    "Observation",
    "SimilarityCandidate",
    "SimilarityStoreStats",
    "TopQuery",
]
