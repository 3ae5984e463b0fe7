from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.base import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository:
    """Session holder shared by every repository.

    Routing, automation and conversion each compose several repositories
    over one ``AsyncSession`` so a lead update and its log row land in
    the same transaction.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def _persist(self, instance: ModelT, refresh: bool = False) -> ModelT:
        """Add *instance*, flush it and optionally reload server defaults."""
        self._db.add(instance)
        await self._db.flush()
        if refresh:
            await self._db.refresh(instance)
        return instance

    async def flush(self) -> None:
        await self._db.flush()

    async def commit(self) -> None:
        await self._db.commit()

    async def rollback(self) -> None:
        await self._db.rollback()
