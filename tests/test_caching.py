"""
Tests for the single-tier cache: delegation, wrap() and refresh-ahead.
"""
import asyncio
import logging

import pytest

from polycache.cache import MISSING, Cache, RequestCoalescer, UncacheableValueError, caching
from polycache.stores import MemoryStore


class PartialCoalescer(RequestCoalescer):
    """Coalescer that lets keys starting with 'no_coalesce' through uncoordinated."""

    async def get_or_fetch(self, cache_key, fetch_fn):
        if cache_key.startswith("no_coalesce"):
            return await fetch_fn()
        return await super().get_or_fetch(cache_key, fetch_fn)


@pytest.fixture
def cache():
    return caching(MemoryStore())


# =============================================================================
# Delegation
# =============================================================================

class TestGetSet:

    @pytest.mark.asyncio
    async def test_unknown_key_is_missing(self, cache):
        assert await cache.get("never-written") is MISSING

    @pytest.mark.asyncio
    async def test_set_then_get(self, cache, clock):
        await cache.set("k", "v", 100)
        assert await cache.get("k") == "v"
        clock.advance(100)
        assert await cache.get("k") is MISSING

    @pytest.mark.asyncio
    async def test_set_without_ttl(self, cache):
        await cache.set("k", "v")
        assert await cache.get("k") == "v"

    @pytest.mark.asyncio
    async def test_uncacheable_value_propagates(self, cache):
        with pytest.raises(UncacheableValueError, match="no cacheable value MISSING"):
            await cache.set("k", MISSING)

    @pytest.mark.asyncio
    async def test_uncacheable_value_in_batch_propagates(self, cache):
        with pytest.raises(UncacheableValueError):
            await cache.store.set_many([("k", MISSING)])

    @pytest.mark.asyncio
    async def test_delete(self, cache):
        await cache.set("k", "v")
        await cache.delete("k")
        assert await cache.get("k") is MISSING

    @pytest.mark.asyncio
    async def test_reset(self, cache):
        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.reset()
        assert await cache.get("a") is MISSING
        assert await cache.get("b") is MISSING

    @pytest.mark.asyncio
    async def test_store_is_exposed(self):
        store = MemoryStore()
        cache = Cache(store)
        assert cache.store is store
        await cache.store.set_many([("a", 1), ("b", 2)])
        assert sorted(await cache.store.keys()) == ["a", "b"]


# =============================================================================
# wrap()
# =============================================================================

class TestWrap:

    @pytest.mark.asyncio
    async def test_miss_calls_producer_once_then_hits(self, cache, make_producer):
        producer = make_producer("value")

        assert await cache.wrap("k", producer, 2000) == "value"
        assert await cache.get("k") == "value"
        assert producer.calls == 1

        assert await cache.wrap("k", producer, 2000) == "value"
        assert producer.calls == 1

    @pytest.mark.asyncio
    async def test_hit_does_not_call_producer(self, cache, make_producer):
        producer = make_producer("other")
        await cache.set("k", "cached", 2000)

        assert await cache.wrap("k", producer) == "cached"
        assert producer.calls == 0

    @pytest.mark.asyncio
    async def test_ttl_in_milliseconds(self, cache, clock, make_producer):
        await cache.wrap("k", make_producer("value"), 2000)
        clock.advance(2000)

        assert await cache.get("k") is MISSING
        assert await cache.wrap("k", make_producer("foo")) == "foo"

    @pytest.mark.asyncio
    async def test_ttl_as_function_of_value(self, cache, clock, make_producer):
        calls = []

        def ttl_fn(value):
            calls.append(value)
            return len(value) / 2 * 1000

        await cache.wrap("k", make_producer("abcdef"), ttl_fn)
        assert await cache.wrap("k", make_producer("foo")) == "abcdef"
        assert calls == ["abcdef"]

        clock.advance(3000)
        assert await cache.get("k") is MISSING

    @pytest.mark.asyncio
    async def test_falsy_result_is_cached(self, cache, make_producer):
        producer = make_producer(0)
        assert await cache.wrap("constructor", producer) == 0
        assert await cache.wrap("constructor", producer) == 0
        assert producer.calls == 1

    @pytest.mark.asyncio
    async def test_none_result_is_cached(self, cache, make_producer):
        producer = make_producer(None)
        assert await cache.wrap("k", producer) is None
        assert await cache.wrap("k", producer) is None
        assert producer.calls == 1

    @pytest.mark.asyncio
    async def test_producer_failure_propagates_and_writes_nothing(self, cache, make_producer):
        producer = make_producer(error=RuntimeError("boom"))

        with pytest.raises(RuntimeError, match="boom"):
            await cache.wrap("k", producer)
        assert await cache.get("k") is MISSING

    @pytest.mark.asyncio
    async def test_concurrent_wraps_call_producer_once(self, cache, make_producer):
        producer = make_producer("value", delay=0.01)

        results = await asyncio.gather(
            *(cache.wrap("k", producer, 2000) for _ in range(10)),
            return_exceptions=True,
        )

        assert producer.calls == 1
        assert results == ["value"] * 10

    @pytest.mark.asyncio
    async def test_concurrent_wraps_share_failure(self, cache, make_producer):
        producer = make_producer(delay=0.01, error=RuntimeError("boom"))

        results = await asyncio.gather(
            *(cache.wrap("k", producer) for _ in range(3)),
            return_exceptions=True,
        )

        assert producer.calls == 1
        assert all(isinstance(r, RuntimeError) for r in results)

    @pytest.mark.asyncio
    async def test_uncoalesced_wraps_all_run_but_still_succeed(self, make_producer):
        cache = Cache(MemoryStore(), coalescer=PartialCoalescer())
        producer = make_producer("value", delay=0.01)

        results = await asyncio.gather(
            *(cache.wrap("no_coalesce", producer, 2000) for _ in range(10)),
            return_exceptions=True,
        )

        assert producer.calls == 10
        assert results == ["value"] * 10

    @pytest.mark.asyncio
    async def test_shared_coalescer_spans_caches(self, make_producer):
        coalescer = RequestCoalescer()
        first = Cache(MemoryStore(), coalescer=coalescer)
        second = Cache(MemoryStore(), coalescer=coalescer)
        producer = make_producer("value", delay=0.01)

        await asyncio.gather(first.wrap("k", producer), second.wrap("k", producer))

        assert producer.calls == 1


# =============================================================================
# Refresh-ahead
# =============================================================================

class TestRefreshAhead:

    @pytest.mark.asyncio
    async def test_stale_value_served_while_refreshing(self, clock, make_producer):
        cache = caching(MemoryStore(ttl=5000), refresh_threshold=4000)

        assert await cache.wrap("refresh", make_producer(0)) == 0
        clock.advance(2000)
        # 3000ms left < 4000ms threshold: serve 0, refresh to 1 in the background
        assert await cache.wrap("refresh", make_producer(1)) == 0

        await cache.close()
        clock.advance(500)
        assert await cache.wrap("refresh", make_producer(2)) == 1
        clock.advance(500)
        assert await cache.wrap("refresh", make_producer(3)) == 1

    @pytest.mark.asyncio
    async def test_refresh_does_not_block_return(self, clock):
        cache = caching(MemoryStore(ttl=5000), refresh_threshold=4000)
        await cache.set("k", "old")
        clock.advance(2000)
        release = asyncio.Event()

        async def slow_producer():
            await release.wait()
            return "new"

        assert await cache.wrap("k", slow_producer) == "old"
        assert await cache.get("k") == "old"

        release.set()
        await cache.close()
        assert await cache.get("k") == "new"

    @pytest.mark.asyncio
    async def test_refresh_uses_resolved_ttl(self, clock):
        cache = caching(MemoryStore(ttl=5000), refresh_threshold=4000)
        await cache.set("k", "old")
        clock.advance(2000)

        async def producer():
            return "new"

        await cache.wrap("k", producer, 10_000)
        await cache.close()
        assert await cache.store.ttl("k") == 10_000

    @pytest.mark.asyncio
    async def test_no_refresh_above_threshold(self, clock, make_producer):
        cache = caching(MemoryStore(ttl=5000), refresh_threshold=4000)
        await cache.set("k", "v")
        clock.advance(500)
        producer = make_producer("new")

        assert await cache.wrap("k", producer) == "v"
        await cache.close()
        assert producer.calls == 0

    @pytest.mark.asyncio
    async def test_no_refresh_for_keys_without_expiry(self, make_producer):
        cache = caching(MemoryStore(), refresh_threshold=4000)
        await cache.set("k", "v")
        producer = make_producer("new")

        assert await cache.wrap("k", producer) == "v"
        await cache.close()
        assert producer.calls == 0
        assert await cache.get("k") == "v"

    @pytest.mark.asyncio
    async def test_no_refresh_without_threshold(self, clock, make_producer):
        cache = caching(MemoryStore(ttl=5000))
        await cache.set("k", "v")
        clock.advance(4999)
        producer = make_producer("new")

        assert await cache.wrap("k", producer) == "v"
        await cache.close()
        assert producer.calls == 0

    @pytest.mark.asyncio
    async def test_refresh_failure_is_logged_not_raised(self, clock, caplog, make_producer):
        caplog.set_level(logging.WARNING, logger="polycache.manager")
        cache = caching(MemoryStore(ttl=5000), refresh_threshold=4000)
        await cache.set("k", "old")
        clock.advance(2000)

        assert await cache.wrap("k", make_producer(error=RuntimeError("boom"))) == "old"
        await cache.close()

        assert await cache.get("k") == "old"
        assert "Background task failed: refresh k" in caplog.text

    @pytest.mark.asyncio
    async def test_one_refresh_per_key_at_a_time(self, clock):
        cache = caching(MemoryStore(ttl=5000), refresh_threshold=4000)
        await cache.set("k", "old")
        clock.advance(2000)
        release = asyncio.Event()
        calls = []

        async def producer():
            calls.append(1)
            await release.wait()
            return "new"

        await cache.wrap("k", producer)
        await asyncio.sleep(0)
        await cache.wrap("k", producer)
        assert cache.get_stats()["refreshing_count"] == 1

        release.set()
        await cache.close()
        assert len(calls) == 1
        assert cache.get_stats()["refreshing_count"] == 0

    @pytest.mark.asyncio
    async def test_cancelled_refresh_releases_key(self, clock, make_producer):
        cache = caching(MemoryStore(ttl=5000), refresh_threshold=4000)
        await cache.set("k", "old")
        clock.advance(2000)
        producer = make_producer("new")

        assert await cache.wrap("k", producer) == "old"
        for task in list(cache._background._tasks):
            task.cancel()
        await cache.close()

        assert producer.calls == 0
        assert cache.get_stats()["refreshing_count"] == 0

        # Refresh-ahead still works for the key afterwards
        assert await cache.wrap("k", producer) == "old"
        await cache.close()
        assert producer.calls == 1
        assert await cache.get("k") == "new"


def test_stats_snapshot():
    cache = caching(MemoryStore(), refresh_threshold=1000)
    stats = cache.get_stats()
    assert stats["store"] == "MemoryStore"
    assert stats["entries"] == 0
    assert stats["refresh_threshold_ms"] == 1000
    assert stats["coalescer"]["active_requests"] == 0
