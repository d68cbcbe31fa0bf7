"""Analytics over recorded hit/miss events."""

import math
from typing import Literal

from adaptive_cache.config import CacheConfig
from adaptive_cache.entities import CacheAnalytics, MetricRecord, MetricType

TimeRange = Literal["1h", "24h", "7d"]

TIME_RANGES: dict[str, int] = {
    "1h": 60 * 60,
    "24h": 24 * 60 * 60,
    "7d": 7 * 24 * 60 * 60,
}

RECOMMEND_BAND = 0.10
RECOMMEND_LOOSEN_STEP = 0.05
RECOMMEND_TIGHTEN_STEP = 0.02
HIGH_SIMILARITY = 0.95


def window_seconds(time_range: str) -> int:
    """Length of an analytics window.

    Raises:
        ValueError: For anything other than "1h", "24h" or "7d"
    """
    try:
        return TIME_RANGES[time_range]
    except KeyError:
        raise ValueError(
            f"time_range must be one of {sorted(TIME_RANGES)}, got {time_range!r}"
        ) from None


def recommend_threshold(
    hit_rate: float,
    average_similarity: float,
    hit_similarities: list[float],
    current_threshold: float,
    config: CacheConfig,
) -> float:
    """Suggest a threshold from observed traffic.

    First match wins:
    1. hit rate well under target: loosen by 0.05 (floored at min_threshold)
    2. hit rate well over target with mediocre similarity: tighten by 0.02
       (capped at max_threshold)
    3. otherwise pick the hit similarity that would have produced the
       target hit rate, falling back to the current threshold
    """
    target = config.target_hit_rate
    if hit_rate < target - RECOMMEND_BAND:
        return max(config.min_threshold, current_threshold - RECOMMEND_LOOSEN_STEP)

    if hit_rate > target + RECOMMEND_BAND and average_similarity < HIGH_SIMILARITY:
        return min(config.max_threshold, current_threshold + RECOMMEND_TIGHTEN_STEP)

    if not hit_similarities:
        return current_threshold
    ranked = sorted(hit_similarities, reverse=True)
    index = math.floor(len(ranked) * target)
    return ranked[index] if index < len(ranked) else current_threshold


def summarize(
    records: list[MetricRecord],
    current_threshold: float,
    config: CacheConfig,
) -> CacheAnalytics:
    """Fold a window of events into a CacheAnalytics snapshot."""
    hits = [r for r in records if r.metric_type is MetricType.CACHE_HIT]
    misses = [r for r in records if r.metric_type is MetricType.CACHE_MISS]
    total = len(hits) + len(misses)

    if total == 0:
        return CacheAnalytics(
            hit_rate=0.0,
            total_queries=0,
            cache_hits=0,
            cache_misses=0,
            average_similarity=0.0,
            current_threshold=current_threshold,
            recommended_threshold=config.similarity_threshold,
        )

    hit_rate = len(hits) / total
    # Hits recorded without a score were exact matches.
    scores = [r.similarity if r.similarity is not None else 1.0 for r in hits]
    average_similarity = sum(scores) / len(scores) if scores else 0.0
    hit_similarities = [r.similarity for r in hits if r.similarity is not None]

    return CacheAnalytics(
        hit_rate=hit_rate,
        total_queries=total,
        cache_hits=len(hits),
        cache_misses=len(misses),
        average_similarity=average_similarity,
        current_threshold=current_threshold,
        recommended_threshold=recommend_threshold(
            hit_rate, average_similarity, hit_similarities, current_threshold, config
        ),
    )
