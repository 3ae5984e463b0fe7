from typing import TYPE_CHECKING, AsyncGenerator, Dict
from unittest.mock import AsyncMock

if TYPE_CHECKING:
    from app.core.cache import CacheService

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.main import app


@pytest_asyncio.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the routing API; overrides are reset afterwards."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Async Redis stand-in with a tiny in-memory keyspace.

    Counters really count and ``SET NX`` refuses a held key, so
    round-robin cursors and automation locks behave as they would
    against Redis. Individual methods can still be replaced per test.
    """
    keys: Dict[str, object] = {}

    async def _incr(key):
        keys[key] = int(keys.get(key, 0)) + 1
        return keys[key]

    async def _set(key, value, nx=False, ex=None):
        if nx and key in keys:
            return None
        keys[key] = value
        return True

    async def _eval(script, numkeys, key, token):
        if keys.get(key) == token:
            del keys[key]
            return 1
        return 0

    redis = AsyncMock()
    redis.keys_store = keys
    redis.get = AsyncMock(side_effect=lambda key: keys.get(key))
    redis.set = AsyncMock(side_effect=_set)
    redis.delete = AsyncMock(side_effect=lambda key: keys.pop(key, None))
    redis.incr = AsyncMock(side_effect=_incr)
    redis.expire = AsyncMock(return_value=True)
    redis.eval = AsyncMock(side_effect=_eval)
    redis.ping = AsyncMock(return_value=True)
    return redis


@pytest.fixture
def mock_cache(mock_redis) -> "CacheService":
    from app.core.cache import CacheService

    return CacheService(redis_client=mock_redis)
