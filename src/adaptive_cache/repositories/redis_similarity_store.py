"""Redis implementation of SimilarityStore.

This repository uses Redis Stack with vector search capabilities (HNSW index).
Records are hashes keyed ``<index>:<tenant>:<query-hash>`` so a repeated
store of the same query replaces the previous record, and each record
carries a ``tenant_id`` tag used to filter lookups.
"""

import json
import logging
import time
from typing import Any

import numpy as np
import redis
from redisvl.index import SearchIndex
from redisvl.query import VectorQuery
from redisvl.query.filter import Tag

from adaptive_cache.config import get_redis_client, settings
from adaptive_cache.entities import SimilarityCandidate, SimilarityStoreStats, TopQuery
from adaptive_cache.errors import AdapterUnavailableError
from adaptive_cache.repositories.redis_fast_store import escape_glob
from adaptive_cache.utils import query_hash

logger = logging.getLogger(__name__)

_RECORD_FIELDS = ["tenant_id", "query", "response", "hit_count", "expires_at", "metadata"]

# HINCRBY on a key that expired after the search would recreate it without a TTL
_BUMP_HITS = """
if redis.call("EXISTS", KEYS[1]) == 1 then
    return redis.call("HINCRBY", KEYS[1], "hit_count", 1)
end
return false
"""


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return "" if value is None else str(value)


def _number(value: Any, default: float = 0.0) -> float:
    try:
        return float(_text(value))
    except ValueError:
        return default


def _metadata(raw: Any) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(_text(raw))
    except json.JSONDecodeError:
        return {"raw": _text(raw)}
    return parsed if isinstance(parsed, dict) else {"raw": parsed}


class RedisSimilarityStore:
    """Redis implementation using a tenant-tagged HNSW vector index.

    This class satisfies the SimilarityStore protocol through structural
    typing - no explicit inheritance needed.

    Uses Redis Stack's vector search with:
    - HNSW (Hierarchical Navigable Small World) algorithm
    - COSINE distance metric (similarity = 1 - distance)
    - Native key expiry plus an ``expires_at`` field for explicit purges
    """

    ADAPTER = "similarity_store"

    def __init__(
        self,
        dimension: int,
        redis_client: redis.Redis | None = None,
        index_name: str | None = None,
        scan_count: int = 500,
    ) -> None:
        """Initialize the Redis similarity store.

        Args:
            dimension: Embedding vector dimension for the index.
            redis_client: Redis client instance. If None, creates default.
            index_name: Name of the Redis search index.
            scan_count: SCAN batch size hint.
        """
        self._client = redis_client or get_redis_client()
        self._index_name = index_name or settings.cache_index_name
        self._dimension = dimension
        self._scan_count = scan_count
        self._index: SearchIndex | None = None

        self._ensure_index()

    @classmethod
    def create(
        cls,
        dimension: int,
        redis_client: redis.Redis | None = None,
        index_name: str | None = None,
    ) -> "RedisSimilarityStore":
        """Factory method to create RedisSimilarityStore with defaults.

        Example:
            ```python
            provider = OllamaEmbeddingProvider.create()
            store = RedisSimilarityStore.create(dimension=provider.dimension)
            ```
        """
        return cls(dimension=dimension, redis_client=redis_client, index_name=index_name)

    def _ensure_index(self) -> None:
        """Ensure the Redis vector index exists."""
        if self._index is not None:
            return

        index_schema = {
            "index": {
                "name": self._index_name,
                "prefix": f"{self._index_name}:",
                "storage_type": "hash",
            },
            "fields": [
                {"name": "tenant_id", "type": "tag"},
                {"name": "query", "type": "text"},
                {"name": "response", "type": "text"},
                {
                    "name": "query_vector",
                    "type": "vector",
                    "attrs": {
                        "dims": self._dimension,
                        "algorithm": "HNSW",
                        "metric": "COSINE",
                    },
                },
                {"name": "stored_at", "type": "numeric"},
                {"name": "expires_at", "type": "numeric"},
                {"name": "hit_count", "type": "numeric"},
                {"name": "metadata", "type": "text"},
            ],
        }

        index = SearchIndex.from_dict(index_schema, redis_client=self._client)
        try:
            index.create(overwrite=False)
            logger.info("Vector index ready: %s", self._index_name)
        except Exception as e:
            if "already exists" not in str(e):
                raise AdapterUnavailableError(self.ADAPTER, f"index creation failed: {e}") from e
            logger.info("Using existing index: %s", self._index_name)
        self._index = index

    def _record_key(self, tenant_id: str, query: str) -> str:
        return f"{self._index_name}:{tenant_id}:{query_hash(query)}"

    def _scan(self, pattern: str) -> list[bytes]:
        return list(self._client.scan_iter(match=pattern, count=self._scan_count))

    def _tenant_pattern(self, tenant_id: str | None) -> str:
        if tenant_id is None:
            return f"{escape_glob(self._index_name)}:*"
        return f"{escape_glob(self._index_name)}:{escape_glob(tenant_id)}:*"

    def lookup(self, tenant_id: str, vector: list[float]) -> SimilarityCandidate | None:
        """Find the closest record of the tenant.

        The served record's ``hit_count`` is incremented.

        Args:
            tenant_id: Tenant scope
            vector: The query embedding vector

        Returns:
            The nearest candidate, or None when the tenant has no records
        """
        if self._index is None:
            return None

        query = VectorQuery(
            vector=vector,
            vector_field_name="query_vector",
            return_fields=["query", "response", "hit_count", "expires_at", "metadata"],
            filter_expression=Tag("tenant_id") == tenant_id,
            num_results=1,
        )
        try:
            results = self._index.query(query)
        except Exception as e:
            raise AdapterUnavailableError(self.ADAPTER, f"vector query failed: {e}") from e

        if not results:
            return None

        best = results[0]
        key = _text(best.get("id"))
        distance = _number(best.get("vector_distance"), default=2.0)
        hit_count = int(_number(best.get("hit_count")))
        try:
            bumped = self._client.eval(_BUMP_HITS, 1, key)
        except redis.RedisError as e:
            logger.warning("Could not bump hit count for %s: %s", key, e)
        else:
            if bumped is not None:
                hit_count = int(bumped)

        expires_at = _number(best.get("expires_at"))
        return SimilarityCandidate(
            id=key,
            query=_text(best.get("query")),
            response=_text(best.get("response")),
            similarity=min(1.0, max(0.0, 1.0 - distance)),
            hit_count=hit_count,
            expires_at=expires_at or None,
            metadata=_metadata(best.get("metadata")),
        )

    def store(
        self,
        tenant_id: str,
        query: str,
        response: str,
        vector: list[float],
        metadata: dict[str, Any],
        ttl: int,
    ) -> str:
        """Upsert a cache record.

        Args:
            tenant_id: Tenant scope
            query: The original query text
            response: The cached response
            vector: The embedding vector for the query
            metadata: Metadata dictionary (JSON-serialisable)
            ttl: Time-to-live in seconds

        Returns:
            The storage key for the record
        """
        key = self._record_key(tenant_id, query)
        now = time.time()

        pipe = self._client.pipeline()
        pipe.hset(
            key,
            mapping={
                "tenant_id": tenant_id,
                "query": query,
                "response": response,
                "query_vector": np.asarray(vector, dtype=np.float32).tobytes(),
                "stored_at": str(now),
                "expires_at": str(now + ttl),
                "metadata": json.dumps(metadata or {}, default=str),
            },
        )
        pipe.hsetnx(key, "hit_count", "0")
        pipe.expire(key, ttl)
        try:
            pipe.execute()
        except redis.RedisError as e:
            raise AdapterUnavailableError(self.ADAPTER, f"store failed: {e}") from e
        return key

    def delete_by_tenant(self, tenant_id: str) -> int:
        try:
            keys = self._scan(self._tenant_pattern(tenant_id))
            if not keys:
                return 0
            deleted: int = self._client.delete(*keys)  # type: ignore[assignment]
        except redis.RedisError as e:
            raise AdapterUnavailableError(self.ADAPTER, f"tenant delete failed: {e}") from e
        return deleted

    def purge_expired(self) -> int:
        """Delete records whose ``expires_at`` has passed.

        Redis usually expires them first; this catches records whose key
        TTL was lost (for example after a restore without TTLs).
        """
        now = time.time()
        try:
            keys = self._scan(self._tenant_pattern(None))
            if not keys:
                return 0
            pipe = self._client.pipeline()
            for key in keys:
                pipe.hget(key, "expires_at")
            expiries = pipe.execute()
            expired = [
                key for key, value in zip(keys, expiries)
                if value is not None and _number(value, default=now + 1) <= now
            ]
            if not expired:
                return 0
            deleted: int = self._client.delete(*expired)  # type: ignore[assignment]
        except redis.RedisError as e:
            raise AdapterUnavailableError(self.ADAPTER, f"purge failed: {e}") from e
        return deleted

    def _load_records(self, tenant_id: str | None) -> list[dict[str, str]]:
        keys = self._scan(self._tenant_pattern(tenant_id))
        if not keys:
            return []
        pipe = self._client.pipeline()
        for key in keys:
            pipe.hmget(key, _RECORD_FIELDS)
        rows = pipe.execute()
        records = []
        for row in rows:
            if row is None or row[1] is None:
                continue
            records.append({name: _text(value) for name, value in zip(_RECORD_FIELDS, row)})
        return records

    def top_queries(self, tenant_id: str, limit: int) -> list[TopQuery]:
        try:
            records = self._load_records(tenant_id)
        except redis.RedisError as e:
            raise AdapterUnavailableError(self.ADAPTER, f"top queries failed: {e}") from e
        ranked = sorted(records, key=lambda r: _number(r["hit_count"]), reverse=True)
        return [TopQuery(query=r["query"], hits=int(_number(r["hit_count"]))) for r in ranked[:limit]]

    def stats_by_tenant(self, tenant_id: str | None = None) -> SimilarityStoreStats:
        """Aggregate record numbers.

        ``average_hit_rate`` is the share of records served at least once.
        """
        try:
            records = self._load_records(tenant_id)
        except redis.RedisError as e:
            raise AdapterUnavailableError(self.ADAPTER, f"stats failed: {e}") from e

        total = len(records)
        served = sum(1 for r in records if _number(r["hit_count"]) > 0)
        ranked = sorted(records, key=lambda r: _number(r["hit_count"]), reverse=True)
        return SimilarityStoreStats(
            total_entries=total,
            average_hit_rate=served / total if total else 0.0,
            top_patterns=[
                TopQuery(query=r["query"], hits=int(_number(r["hit_count"])))
                for r in ranked[:5]
                if _number(r["hit_count"]) > 0
            ],
        )

    def health_check(self) -> bool:
        """Check if Redis is accessible.

        Returns:
            True if healthy, False otherwise
        """
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False

    @property
    def index_name(self) -> str:
        return self._index_name

    @property
    def client(self) -> redis.Redis:
        """Get the Redis client."""
        return self._client
