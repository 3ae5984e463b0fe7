from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings

# One engine serves request handlers, the automation loop and the
# bulk-conversion workers. Each worker opens its own session, so the pool
# must cover CONVERSION_CONCURRENCY on top of normal request traffic.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_size=max(settings.DB_POOL_SIZE, settings.CONVERSION_CONCURRENCY),
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; uncommitted work is rolled back on exit."""
    async with AsyncSessionLocal() as session:
        yield session
