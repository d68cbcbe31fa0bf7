"""Tests for the cache orchestration service."""

import asyncio
import json

import pytest

from adaptive_cache.config import CacheConfig
from adaptive_cache.entities import MetricType, Observation
from adaptive_cache.errors import AdapterUnavailableError, EmbeddingError
from adaptive_cache.services import CacheService
from adaptive_cache.utils import fast_key

TENANT = "tenant-a"


class TestCheckCache:

    @pytest.mark.asyncio
    async def test_stored_query_is_an_exact_fast_hit(self, service, embeddings, metrics_store):
        await service.store_in_cache(TENANT, "hello", "world")
        calls_after_store = embeddings.calls

        entry = await service.check_cache(TENANT, "hello")

        assert entry is not None
        assert entry.response == "world"
        assert entry.similarity == 1.0
        assert entry.is_exact
        assert entry.id == f"fast:{fast_key(TENANT, 'hello')}"
        assert embeddings.calls == calls_after_store
        hits = metrics_store.of_type(MetricType.CACHE_HIT)
        assert len(hits) == 1
        assert hits[0].metadata["source"] == "fast_store"
        assert service.controller.observations() == (Observation(hit=True, similarity=1.0),)

    @pytest.mark.asyncio
    async def test_similarity_hit_when_fast_store_bypassed(self, service):
        await service.store_in_cache(TENANT, "hello", "world", {"model": "m1"})

        entry = await service.check_cache(TENANT, "hello", bypass_fast_store=True)

        assert entry is not None
        assert not entry.is_exact
        assert entry.similarity == pytest.approx(1.0)
        assert entry.metadata["model"] == "m1"
        assert entry.hit_count == 1

    @pytest.mark.asyncio
    async def test_similarity_hit_writes_through_to_fast_store(
        self, service, similarity_store, embeddings, fast_store
    ):
        vector = await embeddings.encode("hello")
        similarity_store.store(TENANT, "hello", "world", vector, {}, 60)
        assert fast_store.data == {}

        entry = await service.check_cache(TENANT, "hello")

        assert entry is not None and not entry.is_exact
        payload = json.loads(fast_store.data[fast_key(TENANT, "hello")])
        assert payload["response"] == "world"
        assert payload["query"] == "hello"
        again = await service.check_cache(TENANT, "hello")
        assert again.is_exact

    @pytest.mark.asyncio
    async def test_below_threshold_is_a_recorded_miss(self, service, similarity_store, metrics_store):
        await service.store_in_cache(TENANT, "hello", "world")
        similarity_store.forced_similarity = 0.80

        entry = await service.check_cache(TENANT, "hello there", bypass_fast_store=True)

        assert entry is None
        assert service.controller.observations()[-1] == Observation(hit=False, similarity=0.80)
        misses = metrics_store.of_type(MetricType.CACHE_MISS)
        assert misses[-1].metadata == {"similarity": 0.80, "threshold": 0.95}

    @pytest.mark.asyncio
    async def test_miss_without_candidate_records_no_similarity(self, service, metrics_store):
        assert await service.check_cache(TENANT, "never stored") is None
        assert service.controller.observations() == (Observation(hit=False, similarity=None),)
        assert metrics_store.of_type(MetricType.CACHE_MISS)[0].metadata["similarity"] == 0.0

    @pytest.mark.asyncio
    async def test_custom_threshold_applies_to_one_call_only(self, service, similarity_store):
        await service.store_in_cache(TENANT, "hello", "world")
        similarity_store.forced_similarity = 0.80

        entry = await service.check_cache(TENANT, "hi", bypass_fast_store=True, custom_threshold=0.75)

        assert entry is not None
        assert entry.similarity == pytest.approx(0.80)
        assert service.threshold == 0.95
        assert await service.check_cache(TENANT, "hi", bypass_fast_store=True) is None

    @pytest.mark.asyncio
    async def test_lookups_are_tenant_scoped(self, service):
        await service.store_in_cache("tenant-b", "hello", "world")
        assert await service.check_cache(TENANT, "hello") is None

    @pytest.mark.asyncio
    async def test_hundredth_call_adjusts_threshold(self, service):
        for i in range(99):
            await service.check_cache(TENANT, f"question {i}")
        assert service.threshold == 0.95
        assert service.controller.pending_observations == 99

        await service.check_cache(TENANT, "question 99")

        assert service.threshold == pytest.approx(0.94)
        assert service.controller.pending_observations == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tenant, query", [("", "q"), (TENANT, ""), ("a:b", "q")])
    async def test_invalid_arguments_raise(self, service, tenant, query):
        with pytest.raises(ValueError):
            await service.check_cache(tenant, query)

    @pytest.mark.asyncio
    async def test_out_of_range_custom_threshold_raises(self, service):
        with pytest.raises(ValueError):
            await service.check_cache(TENANT, "q", custom_threshold=1.5)


class TestFastStoreKeys:

    @pytest.mark.asyncio
    async def test_hash_collision_falls_back_to_similarity_lookup(self, service, fast_store, embeddings):
        key = fast_key(TENANT, "hello")
        fast_store.data[key] = json.dumps({"query": "something else", "response": "wrong"}).encode()

        entry = await service.check_cache(TENANT, "hello")

        assert entry is None
        assert embeddings.calls == 1

    @pytest.mark.asyncio
    async def test_unreadable_payload_is_a_fast_miss(self, service, fast_store):
        fast_store.data[fast_key(TENANT, "hello")] = b"not json"
        assert await service.check_cache(TENANT, "hello") is None
        assert service.fast_store_enabled

    @pytest.mark.asyncio
    async def test_malformed_payload_fields_fall_back_to_similarity_lookup(self, service, fast_store):
        await service.store_in_cache(TENANT, "hello", "world")
        key = fast_key(TENANT, "hello")
        payload = json.loads(fast_store.data[key])
        payload["storedAt"] = "2026-01-01T00:00:00Z"
        fast_store.data[key] = json.dumps(payload).encode()

        entry = await service.check_cache(TENANT, "hello")

        assert entry is not None and not entry.is_exact
        assert entry.response == "world"
        assert service.controller.pending_observations == 1


class TestFailOpen:

    @pytest.mark.asyncio
    async def test_both_stores_down_is_a_miss(self, service, similarity_store, fast_store):
        await service.store_in_cache(TENANT, "hello", "world")
        similarity_store.fail = True
        fast_store.error = AdapterUnavailableError("fast_store", "down")

        assert await service.check_cache(TENANT, "hello") is None

    @pytest.mark.asyncio
    async def test_embedding_failure_is_a_miss(self, service, embeddings):
        embeddings.error = EmbeddingError("quota exceeded")
        assert await service.check_cache(TENANT, "hello") is None
        assert service.controller.pending_observations == 0

    @pytest.mark.asyncio
    async def test_unexpected_adapter_error_is_a_miss(self, service, similarity_store):
        def broken(*args):
            raise RuntimeError("driver bug")

        similarity_store.lookup = broken
        assert await service.check_cache(TENANT, "hello") is None

    @pytest.mark.asyncio
    async def test_fast_store_failure_disables_it_for_good(self, service, fast_store):
        await service.store_in_cache(TENANT, "hello", "world")
        fast_store.error = ConnectionError("redis gone")

        entry = await service.check_cache(TENANT, "hello")

        # falls through to the similarity store
        assert entry is not None and not entry.is_exact
        assert service.fast_store_enabled is False
        calls = fast_store.get_calls
        fast_store.error = None
        await service.check_cache(TENANT, "hello")
        assert fast_store.get_calls == calls

    @pytest.mark.asyncio
    async def test_metrics_outage_does_not_affect_lookups(self, service, metrics_store):
        await service.store_in_cache(TENANT, "hello", "world")
        metrics_store.fail = True
        entry = await service.check_cache(TENANT, "hello")
        assert entry is not None

    @pytest.mark.asyncio
    async def test_store_failures_are_swallowed(self, service, similarity_store, embeddings):
        similarity_store.fail = True
        assert await service.store_in_cache(TENANT, "hello", "world") is None
        similarity_store.fail = False
        embeddings.error = EmbeddingError("timeout")
        assert await service.store_in_cache(TENANT, "hello", "world") is None

    @pytest.mark.asyncio
    async def test_fast_store_write_failure_keeps_similarity_record(
        self, service, similarity_store, fast_store
    ):
        fast_store.error = AdapterUnavailableError("fast_store", "down")
        record_id = await service.store_in_cache(TENANT, "hello", "world")
        assert record_id is not None
        assert similarity_store.tenant_count(TENANT) == 1
        assert service.fast_store_enabled is False

    @pytest.mark.asyncio
    async def test_works_without_fast_store(self, similarity_store, embeddings, metrics_store, config):
        service = CacheService(
            similarity_store=similarity_store,
            embedding_provider=embeddings,
            metrics_store=metrics_store,
            config=config,
        )
        await service.store_in_cache(TENANT, "hello", "world")
        entry = await service.check_cache(TENANT, "hello")
        assert entry is not None and not entry.is_exact


class TestCancellation:

    @pytest.mark.asyncio
    async def test_deadline_turns_slow_embedding_into_miss(self, service, embeddings):
        embeddings.delay = 1.0
        assert await service.check_cache(TENANT, "hello", timeout=0.05) is None

    @pytest.mark.asyncio
    async def test_collaborator_cancellation_is_a_miss(self, service, embeddings):
        embeddings.error = asyncio.CancelledError()
        assert await service.check_cache(TENANT, "hello") is None

    @pytest.mark.asyncio
    async def test_caller_cancellation_propagates(self, service, embeddings):
        embeddings.delay = 5.0
        task = asyncio.create_task(service.check_cache(TENANT, "hello", timeout=10))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


class TestStoreInCache:

    @pytest.mark.asyncio
    async def test_repeated_store_is_idempotent(self, service, similarity_store, fast_store):
        first = await service.store_in_cache(TENANT, "hello", "world")
        second = await service.store_in_cache(TENANT, "hello", "world")

        assert first == second
        assert similarity_store.tenant_count(TENANT) == 1
        assert len(fast_store.list_keys(f"cache:{TENANT}:")) == 1

    @pytest.mark.asyncio
    async def test_restore_keeps_hit_count(self, service, similarity_store):
        await service.store_in_cache(TENANT, "hello", "world")
        await service.check_cache(TENANT, "hello", bypass_fast_store=True)
        await service.store_in_cache(TENANT, "hello", "world, again")

        top = similarity_store.top_queries(TENANT, 5)
        assert [(q.query, q.hits) for q in top] == [("hello", 1)]

    @pytest.mark.asyncio
    async def test_both_stores_use_configured_ttl(self, similarity_store, embeddings, metrics_store, fast_store):
        service = CacheService(
            similarity_store=similarity_store,
            embedding_provider=embeddings,
            metrics_store=metrics_store,
            fast_store=fast_store,
            config=CacheConfig.create(expiration_seconds=120, warming_enabled=False),
            key_prefix="cache",
        )
        await service.store_in_cache(TENANT, "hello", "world", {"tokens": 12})

        assert fast_store.ttls[fast_key(TENANT, "hello", "cache")] == 120
        record = next(iter(similarity_store.records.values()))
        assert record["metadata"]["tokens"] == 12
        assert "stored_at" in record["metadata"]


class TestMaintenance:

    @pytest.mark.asyncio
    async def test_invalidate_removes_only_that_tenant(self, service, similarity_store, fast_store):
        for tenant in (TENANT, "tenant-b"):
            await service.store_in_cache(tenant, "hello", "world")
            await service.store_in_cache(tenant, "bye", "moon")

        deleted = await service.invalidate_project_cache(TENANT)

        assert deleted == 4
        assert similarity_store.tenant_count(TENANT) == 0
        assert fast_store.list_keys(f"cache:{TENANT}:") == []
        assert similarity_store.tenant_count("tenant-b") == 2
        assert len(fast_store.list_keys("cache:tenant-b:")) == 2
        assert await service.check_cache(TENANT, "hello") is None
        assert await service.check_cache("tenant-b", "hello") is not None

    @pytest.mark.asyncio
    async def test_invalidate_partial_failure_still_clears_other_store(
        self, service, similarity_store, fast_store
    ):
        await service.store_in_cache(TENANT, "hello", "world")
        similarity_store.fail = True

        with pytest.raises(AdapterUnavailableError):
            await service.invalidate_project_cache(TENANT)

        assert fast_store.list_keys(f"cache:{TENANT}:") == []

    @pytest.mark.asyncio
    async def test_invalidate_clears_fast_store_after_it_was_disabled(self, service, fast_store):
        await service.store_in_cache(TENANT, "hello", "world")
        fast_store.error = ConnectionError("blip")
        await service.check_cache(TENANT, "hello")
        assert service.fast_store_enabled is False
        fast_store.error = None

        deleted = await service.invalidate_project_cache(TENANT)

        assert deleted == 2
        assert fast_store.list_keys(f"cache:{TENANT}:") == []

    @pytest.mark.asyncio
    async def test_clear_expired_delegates_to_similarity_store(self, service, similarity_store):
        await service.store_in_cache(TENANT, "hello", "world")
        await service.store_in_cache(TENANT, "bye", "moon")
        next(iter(similarity_store.records.values()))["expires_at"] = 0

        assert await service.clear_expired_cache() == 1
        assert similarity_store.tenant_count(TENANT) == 1

    @pytest.mark.asyncio
    async def test_clear_expired_propagates_adapter_errors(self, service, similarity_store):
        similarity_store.fail = True
        with pytest.raises(AdapterUnavailableError):
            await service.clear_expired_cache()


class TestStats:

    @pytest.mark.asyncio
    async def test_stats_for_one_tenant_and_globally(self, service):
        await service.store_in_cache(TENANT, "hello", "world")
        await service.store_in_cache("tenant-b", "hello", "world")
        await service.check_cache(TENANT, "hello", bypass_fast_store=True)

        tenant_stats = await service.get_cache_stats(TENANT)
        global_stats = await service.get_cache_stats()

        assert tenant_stats.total_entries == 1
        assert tenant_stats.fast_store_entries == 1
        assert tenant_stats.average_hit_rate == 1.0
        assert tenant_stats.top_queries[0].query == "hello"
        assert tenant_stats.average_response_time_ms >= 0.0
        assert tenant_stats.current_threshold == 0.95
        assert global_stats.total_entries == 2
        assert global_stats.fast_store_entries == 2

    @pytest.mark.asyncio
    async def test_stats_survive_store_outages(self, service, similarity_store, metrics_store):
        similarity_store.fail = True
        metrics_store.fail = True
        stats = await service.get_cache_stats(TENANT)
        assert stats.total_entries == 0
        assert stats.average_response_time_ms == 0.0

    @pytest.mark.asyncio
    async def test_health(self, service, similarity_store):
        assert await service.is_healthy() is True
        similarity_store.fail = True
        assert await service.is_healthy() is False
