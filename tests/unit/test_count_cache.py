"""
Unit tests for CountCache.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from conftest import FIXED_NOW
from mdb_dataservices.observability import MetricsCollector
from mdb_dataservices.repositories import CountCache


class MovableClock:
    def __init__(self, now=FIXED_NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.mark.unit
class TestCountCache:
    """Test caching, expiry, invalidation and eviction."""

    @pytest.mark.asyncio
    async def test_second_call_is_served_from_cache(self):
        cache = CountCache(clock=MovableClock())
        loader = AsyncMock(return_value=3)

        assert await cache.get_count_with_cache("electronics", 5, loader) == 3
        assert await cache.get_count_with_cache("electronics", 5, loader) == 3
        loader.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_expired_entry_reloads(self):
        clock = MovableClock()
        cache = CountCache(clock=clock)
        loader = AsyncMock(side_effect=[3, 4])

        await cache.get_count_with_cache("electronics", 5, loader)
        clock.advance(minutes=5)

        assert await cache.get_count_with_cache("electronics", 5, loader) == 4
        assert cache.get_entry("electronics").expires_at_utc == clock.now + timedelta(minutes=5)

    @pytest.mark.asyncio
    async def test_zero_expiry_bypasses_cache(self):
        metrics = MetricsCollector()
        cache = CountCache(clock=MovableClock(), metrics=metrics, model_name="ProductDocument")
        loader = AsyncMock(return_value=1)

        await cache.get_count_with_cache("electronics", 0, loader)
        await cache.get_count_with_cache("electronics", 0, loader)

        assert loader.await_count == 2
        assert len(cache) == 0
        assert metrics.get_counter("count_cache.miss", model="ProductDocument") == 0

    @pytest.mark.asyncio
    async def test_invalidate(self):
        cache = CountCache(clock=MovableClock())
        loader = AsyncMock(side_effect=[3, 4])

        await cache.get_count_with_cache("electronics", 5, loader)
        cache.invalidate("electronics")

        assert await cache.get_count_with_cache("electronics", 5, loader) == 4

    def test_invalidate_empty_key_is_a_no_op(self):
        cache = CountCache()
        cache.invalidate(None)
        cache.invalidate("")
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_least_recently_used_evicted(self):
        cache = CountCache(max_entries=2, clock=MovableClock())
        loader = AsyncMock(return_value=1)

        await cache.get_count_with_cache("a", 5, loader)
        await cache.get_count_with_cache("b", 5, loader)
        await cache.get_count_with_cache("a", 5, loader)
        await cache.get_count_with_cache("c", 5, loader)

        assert cache.get_entry("a") is not None
        assert cache.get_entry("b") is None
        assert len(cache) == 2

    @pytest.mark.asyncio
    async def test_hit_and_miss_metrics(self):
        metrics = MetricsCollector()
        cache = CountCache(clock=MovableClock(), metrics=metrics, model_name="ProductDocument")
        loader = AsyncMock(return_value=2)

        await cache.get_count_with_cache("electronics", 5, loader)
        await cache.get_count_with_cache("electronics", 5, loader)

        assert metrics.get_counter("count_cache.miss", model="ProductDocument") == 1
        assert metrics.get_counter("count_cache.hit", model="ProductDocument") == 1

    @pytest.mark.asyncio
    async def test_loader_failure_caches_nothing(self):
        cache = CountCache(clock=MovableClock())
        loader = AsyncMock(side_effect=RuntimeError("backend down"))

        with pytest.raises(RuntimeError):
            await cache.get_count_with_cache("electronics", 5, loader)
        assert cache.get_entry("electronics") is None
