"""Redis implementation of MetricsStore.

Each tenant's events live in one sorted set scored by Unix timestamp, so
window queries are a single ZRANGEBYSCORE. Events older than the
retention period are trimmed on write.
"""

import json
import time
import uuid
from collections.abc import Iterable
from typing import Any

import redis

from adaptive_cache.config import get_redis_client, settings
from adaptive_cache.entities import MetricRecord, MetricType
from adaptive_cache.errors import AdapterUnavailableError
from adaptive_cache.repositories.redis_fast_store import escape_glob

DEFAULT_RETENTION_SECONDS = 8 * 24 * 60 * 60  # covers the 7d analytics window


class RedisMetricsStore:
    """Sorted-set backed hit/miss event store.

    This class satisfies the MetricsStore protocol through structural
    typing - no explicit inheritance needed.
    """

    ADAPTER = "metrics_store"

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        key_prefix: str | None = None,
        retention_seconds: int = DEFAULT_RETENTION_SECONDS,
    ) -> None:
        self._client = redis_client or get_redis_client()
        self._prefix = key_prefix or settings.metrics_key_prefix
        self._retention = retention_seconds

    @classmethod
    def create(cls, redis_client: redis.Redis | None = None) -> "RedisMetricsStore":
        """Factory method to create RedisMetricsStore with defaults."""
        return cls(redis_client=redis_client)

    def _key(self, tenant_id: str) -> str:
        return f"{self._prefix}:{tenant_id}"

    def record(
        self,
        tenant_id: str,
        metric_type: MetricType,
        latency_ms: float,
        metadata: dict[str, Any],
    ) -> None:
        now = time.time()
        member = json.dumps(
            {
                "id": uuid.uuid4().hex,
                "metric_type": MetricType(metric_type).value,
                "latency_ms": latency_ms,
                "created_at": now,
                "metadata": metadata or {},
            },
            default=str,
        )
        key = self._key(tenant_id)
        pipe = self._client.pipeline()
        pipe.zadd(key, {member: now})
        pipe.zremrangebyscore(key, "-inf", now - self._retention)
        pipe.expire(key, self._retention)
        try:
            pipe.execute()
        except redis.RedisError as e:
            raise AdapterUnavailableError(self.ADAPTER, f"record failed: {e}") from e

    def query(
        self,
        tenant_id: str | None,
        metric_types: Iterable[MetricType],
        since: float,
    ) -> list[MetricRecord]:
        wanted = {MetricType(t).value for t in metric_types}
        try:
            if tenant_id is None:
                keys = list(self._client.scan_iter(match=f"{escape_glob(self._prefix)}:*"))
            else:
                keys = [self._key(tenant_id)]
            records: list[MetricRecord] = []
            for key in keys:
                tenant = key.decode() if isinstance(key, bytes) else key
                tenant = tenant[len(self._prefix) + 1:]
                for raw in self._client.zrangebyscore(key, since, "+inf"):
                    record = self._parse(tenant, raw)
                    if record is not None and record.metric_type.value in wanted:
                        records.append(record)
        except redis.RedisError as e:
            raise AdapterUnavailableError(self.ADAPTER, f"query failed: {e}") from e
        records.sort(key=lambda r: r.created_at)
        return records

    @staticmethod
    def _parse(tenant_id: str, raw: Any) -> MetricRecord | None:
        try:
            data = json.loads(raw.decode() if isinstance(raw, bytes) else raw)
            return MetricRecord(
                tenant_id=tenant_id,
                metric_type=MetricType(data["metric_type"]),
                latency_ms=float(data.get("latency_ms", 0.0)),
                created_at=float(data["created_at"]),
                metadata=data.get("metadata") or {},
            )
        except (ValueError, KeyError, TypeError):
            return None
