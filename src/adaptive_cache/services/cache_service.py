"""Cache service for core business logic.

This service orchestrates the two-tier lookup: an exact-match fast store
in front of a tenant-scoped similarity store, with the hit threshold
owned by a ThresholdController that tunes itself from live traffic.

Lookups and writes fail open. Store outages, embedding failures and
timeouts are logged and turn into a miss or a no-op, so a cache outage
degrades to "always miss" instead of breaking the caller.
"""

import asyncio
import json
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any

from adaptive_cache.config import CacheConfig, settings
from adaptive_cache.entities import CacheAnalytics, CacheEntryEntity, CacheStatsSnapshot, SimilarityCandidate
from adaptive_cache.entities.cache_entry import FAST_ENTRY_PREFIX
from adaptive_cache.errors import AdapterUnavailableError, CacheError
from adaptive_cache.protocols import EmbeddingProvider, FastStore, MetricsStore, SimilarityStore
from adaptive_cache.services.analytics import TimeRange, summarize, window_seconds
from adaptive_cache.services.cache_warmer import CacheWarmer
from adaptive_cache.services.metrics_recorder import MetricsRecorder
from adaptive_cache.services.threshold_controller import ThresholdController
from adaptive_cache.utils import bounded, caller_cancelled, fast_key, run_blocking, tenant_prefix

logger = logging.getLogger(__name__)

STATS_WINDOW_SECONDS = 24 * 60 * 60


class CacheService:
    """Adaptive semantic response cache.

    This service depends on PROTOCOLS, not concrete implementations:
    - SimilarityStore: system of record (Redis vector index by default)
    - FastStore: optional exact-match projection (plain Redis keys)
    - EmbeddingProvider: Ollama, sentence-transformers, ...
    - MetricsStore: hit/miss events for analytics

    It is safe to call from many concurrent tasks. The only shared mutable
    state is the ThresholdController, which serialises its own access, and
    the ``fast_store_enabled`` switch.

    Example:
        ```python
        cache = CacheService.create(embedding_provider=OllamaEmbeddingProvider.create())

        entry = await cache.check_cache("project-42", "How do I reset my password?")
        if entry is None:
            answer = await call_model(...)
            await cache.store_in_cache("project-42", "How do I reset my password?", answer)
        ```
    """

    def __init__(
        self,
        similarity_store: SimilarityStore,
        embedding_provider: EmbeddingProvider,
        metrics_store: MetricsStore,
        fast_store: FastStore | None = None,
        config: CacheConfig | None = None,
        controller: ThresholdController | None = None,
        key_prefix: str | None = None,
    ) -> None:
        """Initialize the cache service.

        Args:
            similarity_store: Vector store holding the cached responses (required).
            embedding_provider: Embedding generation service (required).
            metrics_store: Hit/miss event store (required).
            fast_store: Exact-match store. None disables the fast path.
            config: Tuning knobs. Defaults to ``CacheConfig.from_settings()``.
            controller: Shared threshold controller. Defaults to a new one
                built from ``config``; pass one in to share it between services.
            key_prefix: Fast-store key prefix. Defaults to settings.

        Raises:
            ConfigurationError: If the environment-derived config is invalid
        """
        self._config = config or CacheConfig.from_settings()
        self._similarity = similarity_store
        self._embeddings = embedding_provider
        self._fast = fast_store
        self._controller = controller or ThresholdController(self._config)
        self._metrics = MetricsRecorder(metrics_store, timeout=self._config.operation_timeout)
        self._warmer = CacheWarmer(warm=self.warm_cache, delay=self._config.warming_delay_seconds)
        self._key_prefix = key_prefix or settings.cache_key_prefix
        self._fast_lock = threading.Lock()

    @classmethod
    def create(
        cls,
        embedding_provider: EmbeddingProvider | None = None,
        similarity_store: SimilarityStore | None = None,
        fast_store: FastStore | None = None,
        metrics_store: MetricsStore | None = None,
        **overrides: Any,
    ) -> "CacheService":
        """Factory method to create CacheService with Redis-backed defaults.

        Any collaborator left as None is built from settings: an Ollama
        embedding provider and Redis fast, similarity and metrics stores.
        Keyword overrides are applied on top of the environment config.

        Example:
            ```python
            cache = CacheService.create(similarity_threshold=0.93, warming_enabled=False)
            ```

        Raises:
            ConfigurationError: If the resulting config is invalid
        """
        from adaptive_cache.repositories import (
            OllamaEmbeddingProvider,
            RedisFastStore,
            RedisMetricsStore,
            RedisSimilarityStore,
        )

        config = CacheConfig.from_settings(**overrides)
        embedding_provider = embedding_provider or OllamaEmbeddingProvider.create()
        if similarity_store is None:
            similarity_store = RedisSimilarityStore.create(dimension=embedding_provider.dimension)
        if fast_store is None and config.fast_store_enabled:
            fast_store = RedisFastStore.create()
        return cls(
            similarity_store=similarity_store,
            embedding_provider=embedding_provider,
            metrics_store=metrics_store or RedisMetricsStore.create(),
            fast_store=fast_store,
            config=config,
        )

    # ------------------------------------------------------------------
    # Lookups and writes (fail open)
    # ------------------------------------------------------------------

    async def check_cache(
        self,
        tenant_id: str,
        query: str,
        *,
        bypass_fast_store: bool = False,
        custom_threshold: float | None = None,
        timeout: float | None = None,
    ) -> CacheEntryEntity | None:
        """Look up a cached response for a tenant's query.

        Business logic:
        1. Exact match in the fast store (unless disabled or bypassed)
        2. Embed the query and ask the similarity store for its best match
        3. Compare against the threshold snapshot taken before any I/O
        4. Record one observation and one metric, writing hits through
           to the fast store

        Args:
            tenant_id: Tenant scope
            query: The query text
            bypass_fast_store: Skip the exact-match shortcut
            custom_threshold: Threshold for this call only
            timeout: Per-call deadline for each external call, in seconds

        Returns:
            CacheEntryEntity on a hit, None on a miss or any cache failure

        Raises:
            ValueError: If tenant_id or query is empty, or custom_threshold
                is outside [0, 1]
        """
        self._validate(tenant_id, query)
        if custom_threshold is not None and not 0.0 <= custom_threshold <= 1.0:
            raise ValueError(f"custom_threshold must be within [0, 1], got {custom_threshold}")

        start = time.perf_counter()
        deadline = timeout or self._config.operation_timeout
        threshold = custom_threshold if custom_threshold is not None else self._controller.current_threshold

        try:
            if self.fast_store_enabled and not bypass_fast_store:
                entry = await self._check_fast_store(tenant_id, query, deadline)
                if entry is not None:
                    self._controller.record(hit=True, similarity=1.0)
                    await self._metrics.record_hit(
                        tenant_id,
                        self._elapsed_ms(start),
                        {"similarity": 1.0, "threshold": threshold, "source": "fast_store"},
                        timeout=deadline,
                    )
                    return entry

            vector = await bounded(self._embeddings.encode(query), deadline)
            candidate = await run_blocking(self._similarity.lookup, tenant_id, vector, timeout=deadline)

            if candidate is not None and candidate.similarity >= threshold:
                self._controller.record(hit=True, similarity=candidate.similarity)
                await self._write_through(tenant_id, query, candidate, deadline)
                await self._metrics.record_hit(
                    tenant_id,
                    self._elapsed_ms(start),
                    {"similarity": candidate.similarity, "threshold": threshold},
                    timeout=deadline,
                )
                return self._entry_from_candidate(query, candidate)

            similarity = candidate.similarity if candidate is not None else None
            self._controller.record(hit=False, similarity=similarity)
            await self._metrics.record_miss(
                tenant_id,
                self._elapsed_ms(start),
                {"similarity": similarity or 0.0, "threshold": threshold},
                timeout=deadline,
            )
            return None

        except asyncio.CancelledError:
            if caller_cancelled():
                raise
            logger.warning("Cache check cancelled by a collaborator (tenant=%s)", tenant_id)
            return None
        except TimeoutError:
            logger.warning("Cache check timed out after %.2fs (tenant=%s)", deadline, tenant_id)
            return None
        except CacheError as e:
            logger.warning("Cache check failed (tenant=%s): %s", tenant_id, e)
            return None
        except Exception:
            logger.exception("Unexpected cache check error (tenant=%s)", tenant_id)
            return None

    async def store_in_cache(
        self,
        tenant_id: str,
        query: str,
        response: str,
        metadata: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> str | None:
        """Store a query-response pair for a tenant.

        Business logic:
        1. Embed the query and upsert it into the similarity store
           (the system of record) with the configured TTL
        2. Project the same pair into the fast store with the same TTL
        3. Schedule a debounced warming pass for the tenant

        Args:
            tenant_id: Tenant scope
            query: The original query text
            response: The model response to cache
            metadata: Optional metadata (model, tokens, cost, ...)
            timeout: Per-call deadline for each external call, in seconds

        Returns:
            The similarity-store record id, or None if the write failed

        Raises:
            ValueError: If tenant_id or query is empty
        """
        self._validate(tenant_id, query)
        deadline = timeout or self._config.operation_timeout
        stored_metadata = {**(metadata or {}), "stored_at": datetime.now(timezone.utc).isoformat()}

        try:
            vector = await bounded(self._embeddings.encode(query), deadline)
            record_id = await run_blocking(
                self._similarity.store,
                tenant_id,
                query,
                response,
                vector,
                stored_metadata,
                self._config.expiration_seconds,
                timeout=deadline,
            )
        except asyncio.CancelledError:
            if caller_cancelled():
                raise
            logger.warning("Cache store cancelled by a collaborator (tenant=%s)", tenant_id)
            return None
        except TimeoutError:
            logger.warning("Cache store timed out after %.2fs (tenant=%s)", deadline, tenant_id)
            return None
        except CacheError as e:
            logger.warning("Cache store failed (tenant=%s): %s", tenant_id, e)
            return None
        except Exception:
            logger.exception("Unexpected cache store error (tenant=%s)", tenant_id)
            return None

        if self.fast_store_enabled:
            await self._put_fast(tenant_id, query, record_id, response, stored_metadata, 0, deadline)

        if self._config.warming_enabled:
            self._warmer.schedule(tenant_id)

        return record_id

    async def warm_cache(self, tenant_id: str, queries: list[str] | None = None) -> int:
        """Pre-populate the fast path for a tenant's common queries.

        Without explicit queries, the tenant's most served queries are
        taken from the similarity store. Queries run through
        ``check_cache`` in fixed-size concurrent batches; individual
        failures are logged and do not stop the pass.

        Returns:
            Number of queries processed
        """
        if not queries:
            try:
                top = await run_blocking(
                    self._similarity.top_queries,
                    tenant_id,
                    self._config.warming_query_limit,
                    timeout=self._config.operation_timeout,
                )
            except (CacheError, TimeoutError) as e:
                logger.warning("Cache warming skipped (tenant=%s): %s", tenant_id, e)
                return 0
            queries = [q.query for q in top]

        batch_size = self._config.warming_batch_size
        for i in range(0, len(queries), batch_size):
            batch = queries[i:i + batch_size]
            results = await asyncio.gather(
                *(self.check_cache(tenant_id, q) for q in batch),
                return_exceptions=True,
            )
            for query, result in zip(batch, results):
                if isinstance(result, BaseException):
                    logger.warning("Warming query failed (tenant=%s, query=%r): %r", tenant_id, query, result)

        logger.info("Cache warmed with %d queries (tenant=%s)", len(queries), tenant_id)
        return len(queries)

    # ------------------------------------------------------------------
    # Maintenance (adapter errors propagate)
    # ------------------------------------------------------------------

    async def invalidate_project_cache(self, tenant_id: str) -> int:
        """Delete every cached entry of a tenant from both stores.

        Best effort, not transactional: a failure in one store does not
        roll back the other. The first failure is re-raised after both
        stores have been attempted.

        Returns:
            Number of similarity-store records plus fast-store keys deleted

        Raises:
            AdapterUnavailableError: If either store failed
        """
        self._validate(tenant_id)
        deadline = self._config.operation_timeout
        deleted = 0
        failures: list[Exception] = []

        try:
            deleted += await run_blocking(self._similarity.delete_by_tenant, tenant_id, timeout=deadline)
        except TimeoutError:
            logger.warning("Similarity-store invalidation timed out (tenant=%s)", tenant_id)
        except Exception as e:
            logger.error("Similarity-store invalidation failed (tenant=%s): %s", tenant_id, e)
            failures.append(e)

        # runs even when lookups have disabled the fast store
        if self._fast is not None:
            try:
                deleted += await run_blocking(
                    self._fast.delete_by_prefix,
                    tenant_prefix(tenant_id, self._key_prefix),
                    timeout=deadline,
                )
            except TimeoutError:
                logger.warning("Fast-store invalidation timed out (tenant=%s)", tenant_id)
            except Exception as e:
                self._disable_fast_store("invalidate", e)
                failures.append(e)

        if failures:
            first = failures[0]
            if isinstance(first, CacheError):
                raise first
            raise AdapterUnavailableError("invalidate", str(first)) from first

        logger.info("Invalidated %d cache entries (tenant=%s)", deleted, tenant_id)
        return deleted

    async def clear_expired_cache(self) -> int:
        """Purge expired similarity-store records.

        The fast store expires its keys natively and needs no sweep.

        Returns:
            Number of records deleted (0 if the purge timed out)

        Raises:
            AdapterUnavailableError: If the similarity store failed
        """
        try:
            count = await run_blocking(self._similarity.purge_expired, timeout=self._config.operation_timeout)
        except TimeoutError:
            logger.warning("Expired-entry purge timed out")
            return 0
        logger.info("Purged %d expired cache entries", count)
        return count

    # ------------------------------------------------------------------
    # Analytics and monitoring
    # ------------------------------------------------------------------

    async def get_cache_analytics(self, tenant_id: str, time_range: TimeRange = "24h") -> CacheAnalytics:
        """Hit/miss analytics for a tenant over "1h", "24h" or "7d".

        An unreadable metrics store yields the same zeroed snapshot as an
        empty window.

        Raises:
            ValueError: For an unknown time_range
        """
        self._validate(tenant_id)
        since = time.time() - window_seconds(time_range)
        try:
            records = await self._metrics.fetch(tenant_id, since)
        except (CacheError, TimeoutError) as e:
            logger.warning("Cache analytics unavailable (tenant=%s): %s", tenant_id, e)
            records = []
        return summarize(records, self._controller.current_threshold, self._config)

    async def get_cache_stats(self, tenant_id: str | None = None) -> CacheStatsSnapshot:
        """Monitoring snapshot, for one tenant or for every tenant.

        Each source is read independently; a failing source contributes
        zeros and a warning.
        """
        deadline = self._config.operation_timeout

        total_entries, average_hit_rate, top_queries = 0, 0.0, []
        try:
            stats = await run_blocking(self._similarity.stats_by_tenant, tenant_id, timeout=deadline)
            total_entries = stats.total_entries
            average_hit_rate = stats.average_hit_rate
            top_queries = list(stats.top_patterns)
        except (CacheError, TimeoutError) as e:
            logger.warning("Similarity-store stats unavailable: %s", e)

        fast_entries = 0
        if self.fast_store_enabled:
            prefix = tenant_prefix(tenant_id, self._key_prefix) if tenant_id else f"{self._key_prefix}:"
            try:
                keys = await run_blocking(self._fast.list_keys, prefix, timeout=deadline)  # type: ignore[union-attr]
                fast_entries = len(keys)
            except TimeoutError:
                logger.warning("Fast-store key count timed out")
            except Exception as e:
                self._disable_fast_store("stats", e)

        average_latency = 0.0
        try:
            records = await self._metrics.fetch(tenant_id, time.time() - STATS_WINDOW_SECONDS)
            if records:
                average_latency = sum(r.latency_ms for r in records) / len(records)
        except (CacheError, TimeoutError) as e:
            logger.warning("Latency metrics unavailable: %s", e)

        return CacheStatsSnapshot(
            total_entries=total_entries,
            fast_store_entries=fast_entries,
            average_hit_rate=average_hit_rate,
            average_response_time_ms=average_latency,
            current_threshold=self._controller.current_threshold,
            top_queries=top_queries,
        )

    def adjust_threshold(self) -> bool:
        """Run an adjustment pass now (no-op unless a full window is buffered)."""
        return self._controller.adjust()

    async def is_healthy(self) -> bool:
        """Check if the similarity store and the embedding provider answer."""
        try:
            store_ok = await run_blocking(self._similarity.health_check, timeout=self._config.operation_timeout)
        except TimeoutError:
            store_ok = False
        embeddings_ok = await self._embeddings.is_available()
        return bool(store_ok) and embeddings_ok

    async def close(self) -> None:
        """Cancel pending warming passes."""
        await self._warmer.cancel_all()

    # ------------------------------------------------------------------
    # Fast store helpers
    # ------------------------------------------------------------------

    async def _check_fast_store(self, tenant_id: str, query: str, deadline: float) -> CacheEntryEntity | None:
        key = fast_key(tenant_id, query, self._key_prefix)
        try:
            raw = await run_blocking(self._fast.get, key, timeout=deadline)  # type: ignore[union-attr]
        except TimeoutError:
            logger.warning("Fast-store lookup timed out (tenant=%s)", tenant_id)
            return None
        except Exception as e:
            self._disable_fast_store("get", e)
            return None
        if raw is None:
            return None

        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.warning("Discarding unreadable fast-store entry %s: %s", key, e)
            return None
        if not isinstance(data, dict) or data.get("query") != query:
            logger.debug("Fast-store key collision for %s; falling back to similarity lookup", key)
            return None

        expires_at = None
        stored_at = data.get("storedAt")
        try:
            if stored_at:
                expires_at = datetime.fromtimestamp(
                    float(stored_at) + self._config.expiration_seconds, tz=timezone.utc
                )
            hit_count = int(data.get("hitCount", 0))
        except (TypeError, ValueError, OverflowError, OSError) as e:
            logger.warning("Discarding malformed fast-store entry %s: %s", key, e)
            return None
        return CacheEntryEntity(
            id=f"{FAST_ENTRY_PREFIX}{key}",
            query=query,
            response=data.get("response", ""),
            similarity=1.0,
            hit_count=hit_count,
            last_hit_at=datetime.now(timezone.utc),
            expires_at=expires_at,
            metadata=data.get("metadata") or {},
        )

    async def _write_through(self, tenant_id: str, query: str, candidate: SimilarityCandidate, deadline: float) -> None:
        if not self.fast_store_enabled:
            return
        await self._put_fast(
            tenant_id, query, candidate.id, candidate.response, candidate.metadata, candidate.hit_count, deadline
        )

    async def _put_fast(
        self,
        tenant_id: str,
        query: str,
        record_id: str,
        response: str,
        metadata: dict[str, Any],
        hit_count: int,
        deadline: float,
    ) -> None:
        payload = json.dumps(
            {
                "id": record_id,
                "query": query,
                "response": response,
                "metadata": metadata,
                "hitCount": hit_count,
                "storedAt": time.time(),
            },
            default=str,
        ).encode("utf-8")
        try:
            await run_blocking(
                self._fast.set_with_ttl,  # type: ignore[union-attr]
                fast_key(tenant_id, query, self._key_prefix),
                payload,
                self._config.expiration_seconds,
                timeout=deadline,
            )
        except TimeoutError:
            logger.warning("Fast-store write timed out (tenant=%s)", tenant_id)
        except Exception as e:
            self._disable_fast_store("set", e)

    def _disable_fast_store(self, operation: str, error: Exception) -> None:
        with self._fast_lock:
            if not self._config.fast_store_enabled:
                return
            self._config.fast_store_enabled = False
        logger.error("Fast store failed during %s, disabling it for this process: %r", operation, error)

    # ------------------------------------------------------------------
    # Misc
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(tenant_id: str, query: str | None = None) -> None:
        if not tenant_id:
            raise ValueError("tenant_id must not be empty")
        if ":" in tenant_id:
            raise ValueError("tenant_id must not contain ':'")
        if query is not None and not query:
            raise ValueError("query must not be empty")

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return (time.perf_counter() - start) * 1000

    @staticmethod
    def _entry_from_candidate(query: str, candidate: SimilarityCandidate) -> CacheEntryEntity:
        expires_at = None
        if candidate.expires_at:
            expires_at = datetime.fromtimestamp(candidate.expires_at, tz=timezone.utc)
        return CacheEntryEntity(
            id=candidate.id,
            query=query,
            response=candidate.response,
            similarity=candidate.similarity,
            hit_count=candidate.hit_count,
            last_hit_at=datetime.now(timezone.utc),
            expires_at=expires_at,
            metadata=dict(candidate.metadata),
        )

    @property
    def fast_store_enabled(self) -> bool:
        return self._fast is not None and self._config.fast_store_enabled

    @property
    def threshold(self) -> float:
        """Get the live similarity threshold."""
        return self._controller.current_threshold

    @property
    def config(self) -> CacheConfig:
        return self._config

    @property
    def controller(self) -> ThresholdController:
        """Get the threshold controller (for testing)."""
        return self._controller

    @property
    def warmer(self) -> CacheWarmer:
        """Get the warming scheduler (for testing)."""
        return self._warmer
