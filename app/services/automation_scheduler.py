import asyncio
import logging
from typing import Optional

from app.core.config import settings
from app.services.automation_engine import AutomationTriggerEngine

logger = logging.getLogger(__name__)


async def start_automation_loop(
    engine: AutomationTriggerEngine,
    stop_event: asyncio.Event,
    interval_seconds: Optional[int] = None,
) -> None:
    """Run automation ticks on a fixed interval until *stop_event* is set.

    A tick in progress when the event is set stops between leads; the
    loop then exits instead of sleeping.
    """
    interval = interval_seconds or settings.AUTOMATION_TICK_SECONDS
    logger.info("Automation background task started (interval=%ds)", interval)
    while not stop_event.is_set():
        try:
            await engine.tick(stop_event=stop_event)
        except Exception:
            logger.error("Automation tick failed", exc_info=True)
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass
    logger.info("Automation background task stopped")
