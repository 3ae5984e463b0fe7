import logging
from typing import Optional
from uuid import uuid4

from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class CacheUnavailableError(Exception):
    """Redis is configured but did not answer a call whose outcome matters."""


# Compare-and-delete so a lock is only released by the holder that set it
_RELEASE_LOCK_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


class CacheService:
    """Thin wrapper around an async Redis client.

    If *redis_client* is ``None`` (Redis unavailable), every operation
    degrades to a no-op, so callers never need to check for ``None``.
    Counters return ``None`` and locks report "not held" in that case so
    the caller can fall back to the database-backed equivalent.
    """

    def __init__(self, redis_client: Optional[Redis] = None) -> None:
        self._redis: Optional[Redis] = redis_client

    # ------------------------------------------------------------------
    # Atomic counter for round-robin cursors
    # ------------------------------------------------------------------

    async def incr(self, key: str, ttl: int | None = None) -> Optional[int]:
        """Increment an integer counter and return the new value.

        Returns ``None`` if Redis is unavailable so the caller can
        fall back to the persisted cursor table.
        """
        if self._redis is None:
            return None
        try:
            value = await self._redis.incr(key)
            if ttl:
                await self._redis.expire(key, ttl)
            return value
        except Exception:
            logger.warning("Redis INCR failed for key %s", key)
            return None

    # ------------------------------------------------------------------
    # Short-lived distributed locks guarding overlapping automation ticks
    # ------------------------------------------------------------------

    async def acquire_lock(self, key: str, ttl: int) -> Optional[str]:
        """Try to take *key* for *ttl* seconds.

        Returns a token to pass to :meth:`release_lock` when acquired and
        ``None`` when another holder owns the lock or no Redis client is
        configured.  A failing Redis raises ``CacheUnavailableError`` so
        callers can tell an outage apart from contention.
        """
        if self._redis is None:
            return None
        token = uuid4().hex
        try:
            acquired = await self._redis.set(key, token, nx=True, ex=ttl)
        except Exception as exc:
            logger.warning("Redis SET NX failed for lock %s", key)
            raise CacheUnavailableError(f"Redis lock {key} unavailable") from exc
        return token if acquired else None

    async def release_lock(self, key: str, token: str) -> None:
        """Release *key* if it is still held with *token* (best-effort)."""
        if self._redis is None:
            return
        try:
            await self._redis.eval(_RELEASE_LOCK_SCRIPT, 1, key, token)
        except Exception:
            logger.warning("Redis lock release failed for %s", key)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def is_available(self) -> bool:
        """Return ``True`` if a Redis client is configured."""
        return self._redis is not None
