"""Metrics store protocol."""

from collections.abc import Iterable
from typing import Any, Protocol, runtime_checkable

from adaptive_cache.entities import MetricRecord, MetricType


@runtime_checkable
class MetricsStore(Protocol):
    """Protocol for the analytics store that keeps hit/miss events."""

    def record(
        self,
        tenant_id: str,
        metric_type: MetricType,
        latency_ms: float,
        metadata: dict[str, Any],
    ) -> None:
        """Append one event."""
        ...

    def query(
        self,
        tenant_id: str | None,
        metric_types: Iterable[MetricType],
        since: float,
    ) -> list[MetricRecord]:
        """Events of the given types recorded at or after ``since``.

        Args:
            tenant_id: Restrict to one tenant, or None for every tenant
            metric_types: Types to include
            since: Unix timestamp lower bound
        """
        ...
