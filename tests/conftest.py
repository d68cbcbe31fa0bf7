"""Shared fixtures: in-memory fakes for every cache collaborator.

No Redis or embedding model is needed; each fake can be switched into a
failing mode to exercise the fail-open paths.
"""

import asyncio
import math
import random
import threading
import time
from typing import Any

import pytest

from adaptive_cache.config import CacheConfig
from adaptive_cache.entities import (
    MetricRecord,
    MetricType,
    SimilarityCandidate,
    SimilarityStoreStats,
    TopQuery,
)
from adaptive_cache.errors import AdapterUnavailableError
from adaptive_cache.services import CacheService
from adaptive_cache.utils import query_hash


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class FakeEmbeddingProvider:
    """Deterministic embeddings; known texts can be pinned to vectors."""

    def __init__(self, dimension: int = 8) -> None:
        self._dimension = dimension
        self.vectors: dict[str, list[float]] = {}
        self.calls = 0
        self.delay = 0.0
        self.error: BaseException | None = None
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return "fake-embedding"

    async def encode(self, text: str) -> list[float]:
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            if text not in self.vectors:
                rng = random.Random(text)
                self.vectors[text] = [rng.uniform(-1, 1) for _ in range(self.dimension)]
            return list(self.vectors[text])
        finally:
            self.in_flight -= 1

    async def is_available(self) -> bool:
        return self.error is None


class FakeSimilarityStore:
    """Tenant-scoped cosine search over a dict of records."""

    def __init__(self) -> None:
        self.records: dict[str, dict[str, Any]] = {}
        self.fail = False
        self.forced_similarity: float | None = None
        self.top_query_calls = 0
        self._lock = threading.Lock()

    def _check(self) -> None:
        if self.fail:
            raise AdapterUnavailableError("similarity_store", "connection refused")

    def lookup(self, tenant_id: str, vector: list[float]) -> SimilarityCandidate | None:
        self._check()
        with self._lock:
            best_key, best_score = None, -1.0
            for key, record in self.records.items():
                if record["tenant_id"] != tenant_id:
                    continue
                score = _cosine(vector, record["vector"])
                if score > best_score:
                    best_key, best_score = key, score
            if best_key is None:
                return None
            record = self.records[best_key]
            record["hit_count"] += 1
            similarity = self.forced_similarity if self.forced_similarity is not None else best_score
            return SimilarityCandidate(
                id=best_key,
                query=record["query"],
                response=record["response"],
                similarity=min(1.0, max(0.0, similarity)),
                hit_count=record["hit_count"],
                expires_at=record["expires_at"],
                metadata=dict(record["metadata"]),
            )

    def store(self, tenant_id, query, response, vector, metadata, ttl) -> str:
        self._check()
        key = f"sim:{tenant_id}:{query_hash(query)}"
        with self._lock:
            previous = self.records.get(key)
            self.records[key] = {
                "tenant_id": tenant_id,
                "query": query,
                "response": response,
                "vector": list(vector),
                "metadata": dict(metadata),
                "hit_count": previous["hit_count"] if previous else 0,
                "expires_at": time.time() + ttl,
            }
        return key

    def delete_by_tenant(self, tenant_id: str) -> int:
        self._check()
        with self._lock:
            doomed = [k for k, r in self.records.items() if r["tenant_id"] == tenant_id]
            for key in doomed:
                del self.records[key]
        return len(doomed)

    def purge_expired(self) -> int:
        self._check()
        now = time.time()
        with self._lock:
            doomed = [k for k, r in self.records.items() if r["expires_at"] <= now]
            for key in doomed:
                del self.records[key]
        return len(doomed)

    def _tenant_records(self, tenant_id: str | None) -> list[dict[str, Any]]:
        return [r for r in self.records.values() if tenant_id is None or r["tenant_id"] == tenant_id]

    def stats_by_tenant(self, tenant_id: str | None = None) -> SimilarityStoreStats:
        self._check()
        records = self._tenant_records(tenant_id)
        served = [r for r in records if r["hit_count"] > 0]
        return SimilarityStoreStats(
            total_entries=len(records),
            average_hit_rate=len(served) / len(records) if records else 0.0,
            top_patterns=[TopQuery(r["query"], r["hit_count"]) for r in served],
        )

    def top_queries(self, tenant_id: str, limit: int) -> list[TopQuery]:
        self._check()
        self.top_query_calls += 1
        ranked = sorted(self._tenant_records(tenant_id), key=lambda r: r["hit_count"], reverse=True)
        return [TopQuery(r["query"], r["hit_count"]) for r in ranked[:limit]]

    def health_check(self) -> bool:
        return not self.fail

    def tenant_count(self, tenant_id: str) -> int:
        return len(self._tenant_records(tenant_id))


class FakeFastStore:
    """Dict-backed key-value store; ``error`` makes every call raise it."""

    def __init__(self) -> None:
        self.data: dict[str, bytes] = {}
        self.ttls: dict[str, int] = {}
        self.error: Exception | None = None
        self.get_calls = 0

    def _check(self) -> None:
        if self.error is not None:
            raise self.error

    def get(self, key: str) -> bytes | None:
        self.get_calls += 1
        self._check()
        return self.data.get(key)

    def set_with_ttl(self, key: str, value: bytes, ttl: int) -> None:
        self._check()
        self.data[key] = value
        self.ttls[key] = ttl

    def delete_by_prefix(self, prefix: str) -> int:
        self._check()
        doomed = self.list_keys(prefix)
        for key in doomed:
            del self.data[key]
        return len(doomed)

    def list_keys(self, prefix: str) -> list[str]:
        self._check()
        return [k for k in self.data if k.startswith(prefix)]

    def health_check(self) -> bool:
        return self.error is None


class FakeMetricsStore:
    def __init__(self) -> None:
        self.records: list[MetricRecord] = []
        self.fail = False

    def record(self, tenant_id, metric_type, latency_ms, metadata) -> None:
        if self.fail:
            raise AdapterUnavailableError("metrics_store", "down")
        self.records.append(
            MetricRecord(
                tenant_id=tenant_id,
                metric_type=MetricType(metric_type),
                latency_ms=latency_ms,
                created_at=time.time(),
                metadata=dict(metadata),
            )
        )

    def query(self, tenant_id, metric_types, since) -> list[MetricRecord]:
        if self.fail:
            raise AdapterUnavailableError("metrics_store", "down")
        wanted = set(metric_types)
        return [
            r for r in self.records
            if (tenant_id is None or r.tenant_id == tenant_id)
            and r.metric_type in wanted
            and r.created_at >= since
        ]

    def of_type(self, metric_type: MetricType) -> list[MetricRecord]:
        return [r for r in self.records if r.metric_type is metric_type]


# === FIXTURES ===


@pytest.fixture
def embeddings() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def similarity_store() -> FakeSimilarityStore:
    return FakeSimilarityStore()


@pytest.fixture
def fast_store() -> FakeFastStore:
    return FakeFastStore()


@pytest.fixture
def metrics_store() -> FakeMetricsStore:
    return FakeMetricsStore()


@pytest.fixture
def config() -> CacheConfig:
    """Default knobs with background warming switched off."""
    return CacheConfig.create(warming_enabled=False)


@pytest.fixture
def service(similarity_store, embeddings, metrics_store, fast_store, config) -> CacheService:
    return CacheService(
        similarity_store=similarity_store,
        embedding_provider=embeddings,
        metrics_store=metrics_store,
        fast_store=fast_store,
        config=config,
        key_prefix="cache",
    )
