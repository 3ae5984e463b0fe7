import logging
from typing import AsyncIterator, Optional

from fastapi import Depends, Request
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import CacheService
from app.core.config import settings
from app.core.database import AsyncSessionLocal, get_db
from app.repositories.advisor_repository import AdvisorRepository
from app.repositories.automation_rule_repository import AutomationRuleRepository
from app.repositories.conversion_repository import ConversionRepository
from app.repositories.cursor_repository import CursorRepository
from app.repositories.execution_log_repository import ExecutionLogRepository
from app.repositories.lead_repository import LeadRepository
from app.repositories.routing_rule_repository import RoutingRuleRepository
from app.services.action_dispatcher import ActionDispatcher
from app.services.assignment_executor import AssignmentExecutor
from app.services.automation_engine import AutomationTriggerEngine
from app.services.capacity_tracker import CapacityTracker
from app.services.handover_service import HandoverService
from app.services.routing_service import RoutingService

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Redis client factory
# ---------------------------------------------------------------------------


async def get_redis_client() -> AsyncIterator[Optional[Redis]]:
    """Yield an async Redis client, or ``None`` when Redis is unreachable."""
    client = Redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        await client.ping()
    except Exception:
        logger.warning("Redis unavailable, falling back to database cursors")
        await client.aclose()
        yield None
        return
    try:
        yield client
    finally:
        await client.aclose()


async def get_cache_service(
    redis_client: Optional[Redis] = Depends(get_redis_client),
) -> CacheService:
    """Build a :class:`CacheService` backed by the Redis client."""
    return CacheService(redis_client=redis_client)


# ---------------------------------------------------------------------------
# Repository factory functions (each gets the request's shared session)
# ---------------------------------------------------------------------------


async def get_lead_repo(db: AsyncSession = Depends(get_db)) -> LeadRepository:
    return LeadRepository(db)


async def get_advisor_repo(db: AsyncSession = Depends(get_db)) -> AdvisorRepository:
    return AdvisorRepository(db)


async def get_routing_rule_repo(
    db: AsyncSession = Depends(get_db),
) -> RoutingRuleRepository:
    return RoutingRuleRepository(db)


async def get_execution_log_repo(
    db: AsyncSession = Depends(get_db),
) -> ExecutionLogRepository:
    return ExecutionLogRepository(db)


async def get_cursor_repo(db: AsyncSession = Depends(get_db)) -> CursorRepository:
    return CursorRepository(db)


async def get_automation_rule_repo(
    db: AsyncSession = Depends(get_db),
) -> AutomationRuleRepository:
    return AutomationRuleRepository(db)


async def get_conversion_repo(
    db: AsyncSession = Depends(get_db),
) -> ConversionRepository:
    return ConversionRepository(db)


# ---------------------------------------------------------------------------
# Service factory functions
# ---------------------------------------------------------------------------


async def get_assignment_executor(
    cache: CacheService = Depends(get_cache_service),
) -> AssignmentExecutor:
    return AssignmentExecutor(cache=cache)


async def get_routing_service(
    executor: AssignmentExecutor = Depends(get_assignment_executor),
) -> RoutingService:
    return RoutingService(executor=executor)


async def get_capacity_tracker() -> CapacityTracker:
    return CapacityTracker()


async def get_handover_service() -> HandoverService:
    return HandoverService(session_factory=AsyncSessionLocal)


def build_automation_engine(cache: CacheService) -> AutomationTriggerEngine:
    """Wire the automation engine; shared by the API and the background loop."""
    executor = AssignmentExecutor(cache=cache)
    dispatcher = ActionDispatcher(
        session_factory=AsyncSessionLocal,
        routing_service=RoutingService(executor=executor),
        handover_service=HandoverService(session_factory=AsyncSessionLocal),
    )
    return AutomationTriggerEngine(AsyncSessionLocal, dispatcher, cache=cache)


async def get_automation_engine(
    request: Request,
    cache: CacheService = Depends(get_cache_service),
) -> AutomationTriggerEngine:
    """Return the app-wide engine when the lifespan created one."""
    engine = getattr(request.app.state, "automation_engine", None)
    return engine if engine is not None else build_automation_engine(cache)
