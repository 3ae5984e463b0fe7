from unittest.mock import AsyncMock

import pytest

from app.core.cache import CacheService, CacheUnavailableError


class TestCacheService:
    """Redis-backed counters and locks degrade to no-ops without Redis."""

    @pytest.mark.asyncio
    async def test_incr_sets_ttl(self, mock_cache, mock_redis):
        mock_redis.incr = AsyncMock(return_value=7)
        assert await mock_cache.incr("round_robin:pool:all", ttl=60) == 7
        mock_redis.expire.assert_awaited_once_with("round_robin:pool:all", 60)

    @pytest.mark.asyncio
    async def test_incr_without_redis(self):
        assert await CacheService(redis_client=None).incr("k") is None

    @pytest.mark.asyncio
    async def test_incr_failure_returns_none(self, mock_cache, mock_redis):
        mock_redis.incr = AsyncMock(side_effect=ConnectionError("down"))
        assert await mock_cache.incr("k") is None

    @pytest.mark.asyncio
    async def test_acquire_and_release_lock(self, mock_cache, mock_redis):
        token = await mock_cache.acquire_lock("automation:rule:1", ttl=30)

        assert token is not None
        mock_redis.set.assert_awaited_once_with("automation:rule:1", token, nx=True, ex=30)
        await mock_cache.release_lock("automation:rule:1", token)
        assert mock_redis.eval.await_args.args[2:] == ("automation:rule:1", token)

    @pytest.mark.asyncio
    async def test_lock_held_elsewhere(self, mock_cache, mock_redis):
        mock_redis.set = AsyncMock(return_value=None)
        assert await mock_cache.acquire_lock("automation:rule:1", ttl=30) is None

    @pytest.mark.asyncio
    async def test_lock_without_redis(self):
        cache = CacheService(redis_client=None)
        assert cache.is_available is False
        assert await cache.acquire_lock("k", ttl=30) is None
        await cache.release_lock("k", "token")

    @pytest.mark.asyncio
    async def test_second_holder_waits_for_release(self, mock_cache):
        first = await mock_cache.acquire_lock("automation:rule:7", ttl=30)
        assert await mock_cache.acquire_lock("automation:rule:7", ttl=30) is None

        await mock_cache.release_lock("automation:rule:7", "not-the-token")
        assert await mock_cache.acquire_lock("automation:rule:7", ttl=30) is None

        await mock_cache.release_lock("automation:rule:7", first)
        assert await mock_cache.acquire_lock("automation:rule:7", ttl=30) is not None

    @pytest.mark.asyncio
    async def test_lock_outage_is_not_reported_as_contention(self, mock_cache, mock_redis):
        mock_redis.set = AsyncMock(side_effect=ConnectionError("redis down"))
        with pytest.raises(CacheUnavailableError):
            await mock_cache.acquire_lock("automation:rule:1", ttl=30)
