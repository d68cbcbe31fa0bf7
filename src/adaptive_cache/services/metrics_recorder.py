"""Hit/miss event emission.

Recording is best effort: a metrics outage is logged and never reaches
the lookup path. Reading is not, so analytics callers can decide what a
missing window means.
"""

import logging
from collections.abc import Iterable
from typing import Any

from adaptive_cache.entities import MetricRecord, MetricType
from adaptive_cache.protocols import MetricsStore
from adaptive_cache.utils import run_blocking

logger = logging.getLogger(__name__)

LOOKUP_METRICS = (MetricType.CACHE_HIT, MetricType.CACHE_MISS)


class MetricsRecorder:
    """Writes cache events to, and reads windows from, a MetricsStore."""

    def __init__(self, store: MetricsStore, timeout: float) -> None:
        self._store = store
        self._timeout = timeout

    async def record_hit(
        self,
        tenant_id: str,
        latency_ms: float,
        metadata: dict[str, Any],
        timeout: float | None = None,
    ) -> None:
        await self._record(tenant_id, MetricType.CACHE_HIT, latency_ms, metadata, timeout)

    async def record_miss(
        self,
        tenant_id: str,
        latency_ms: float,
        metadata: dict[str, Any],
        timeout: float | None = None,
    ) -> None:
        await self._record(tenant_id, MetricType.CACHE_MISS, latency_ms, metadata, timeout)

    async def _record(
        self,
        tenant_id: str,
        metric_type: MetricType,
        latency_ms: float,
        metadata: dict[str, Any],
        timeout: float | None,
    ) -> None:
        try:
            await run_blocking(
                self._store.record,
                tenant_id,
                metric_type,
                latency_ms,
                metadata,
                timeout=timeout or self._timeout,
            )
        except Exception as e:
            logger.warning(
                "Failed to record %s metric for tenant %s: %r", metric_type.value, tenant_id, e
            )

    async def fetch(
        self,
        tenant_id: str | None,
        since: float,
        metric_types: Iterable[MetricType] = LOOKUP_METRICS,
        timeout: float | None = None,
    ) -> list[MetricRecord]:
        """Read events recorded since ``since``.

        Raises:
            AdapterUnavailableError: If the metrics store fails
            TimeoutError: If the read exceeds the deadline
        """
        return await run_blocking(
            self._store.query,
            tenant_id,
            tuple(metric_types),
            since,
            timeout=timeout or self._timeout,
        )
