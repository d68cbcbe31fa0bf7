"""Metric record entity."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class MetricType(str, Enum):
    """Kinds of cache metrics written to the metrics store."""

    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"


@dataclass(frozen=True)
class MetricRecord:
    """A single hit/miss event as stored in the metrics store.

    Attributes:
        tenant_id: Tenant the lookup was scoped to
        metric_type: Hit or miss
        latency_ms: Wall time of the lookup in milliseconds
        created_at: Unix timestamp of the event
        metadata: Extra fields (similarity, threshold, source)
    """

    tenant_id: str
    metric_type: MetricType
    latency_ms: float
    created_at: float
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def similarity(self) -> float | None:
        value = self.metadata.get("similarity")
        return float(value) if value is not None else None
