"""End-of-day reset of advisor assignment counters.

Meant to be run by cron (or any external scheduler) once per day::

    python -m app.scripts.reset_daily_capacity
"""

import asyncio
import logging

from app.core.config import settings
from app.core.database import AsyncSessionLocal, engine
from app.repositories.advisor_repository import AdvisorRepository
from app.services.capacity_tracker import CapacityTracker


async def reset_daily_capacity() -> int:
    async with AsyncSessionLocal() as session:
        count = await CapacityTracker().reset_daily(AdvisorRepository(session))
    await engine.dispose()
    return count


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL)
    print(f"Reset {asyncio.run(reset_daily_capacity())} advisor counter(s)")
