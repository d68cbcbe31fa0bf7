"""Read-only snapshots returned by analytics and stats operations."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class CacheAnalytics:
    """Hit/miss analytics for a tenant over a time window.

    Attributes:
        hit_rate: cache_hits / total_queries (0 when no queries)
        total_queries: Number of recorded lookups
        cache_hits: Number of recorded hits
        cache_misses: Number of recorded misses
        average_similarity: Mean similarity across hits
        current_threshold: Live threshold at the time of the call
        recommended_threshold: Suggested threshold from recorded traffic
    """

    hit_rate: float
    total_queries: int
    cache_hits: int
    cache_misses: int
    average_similarity: float
    current_threshold: float
    recommended_threshold: float


@dataclass(frozen=True)
class TopQuery:
    """A frequently served query."""

    query: str
    hits: int


@dataclass(frozen=True)
class SimilarityStoreStats:
    """Aggregate numbers reported by the similarity store."""

    total_entries: int
    average_hit_rate: float
    top_patterns: list[TopQuery] = field(default_factory=list)


@dataclass(frozen=True)
class CacheStatsSnapshot:
    """Monitoring snapshot across both stores and the metrics store."""

    total_entries: int
    fast_store_entries: int
    average_hit_rate: float
    average_response_time_ms: float
    current_threshold: float
    top_queries: list[TopQuery] = field(default_factory=list)
