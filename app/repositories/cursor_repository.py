from sqlalchemy.dialects.postgresql import insert

from app.models.round_robin_cursor import RoundRobinCursor
from app.repositories.base import BaseRepository


class CursorRepository(BaseRepository):
    """Database fallback for round-robin counters."""

    async def next_position(self, pool_key: str) -> int:
        """Atomically advance the cursor for *pool_key* and return it.

        The first call for a pool returns 1, matching Redis ``INCR``.
        """
        stmt = insert(RoundRobinCursor).values(pool_key=pool_key, position=1)
        stmt = stmt.on_conflict_do_update(
            index_elements=[RoundRobinCursor.pool_key],
            set_={"position": RoundRobinCursor.position + 1},
        ).returning(RoundRobinCursor.position)
        result = await self._db.execute(stmt)
        return result.scalar_one()
