import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from app.core.cache import CacheService
from app.core.config import settings
from app.core.constants import ROUND_ROBIN_TTL
from app.core.exceptions import (
    AdvisorNotFoundError,
    PersistenceConflictError,
    PoolExhaustedError,
    TargetAtCapacityError,
)
from app.repositories.advisor_repository import AdvisorRepository
from app.repositories.cursor_repository import CursorRepository
from app.repositories.lead_repository import LeadRepository
from app.schemas.capacity import AdvisorSnapshot, AssignmentRecommendation
from app.schemas.common import AssignmentPolicy
from app.schemas.lead import LeadSnapshot
from app.schemas.routing import Assignment, AssignmentConfig
from app.services.advisor_ranking import AdvisorRanker, HttpAdvisorRanker, RecommendationRanker

logger = logging.getLogger(__name__)

# Redis key prefix for per-pool round-robin cursors
_ROUND_ROBIN_KEY_PREFIX = "round_robin:pool"


# ---------------------------------------------------------------------------
# Pure selection over snapshots
# ---------------------------------------------------------------------------


def select_round_robin(
    pool: Sequence[AdvisorSnapshot], position: int
) -> Optional[AdvisorSnapshot]:
    """The advisor whose turn *position* is, if they have spare capacity.

    The rotation covers the whole pool ordered by ``advisor_id``.  A
    member without capacity yields ``None`` for their turn; the caller
    advances the cursor so that turn is spent rather than handed to the
    next member.
    """
    ordered = sorted(pool, key=lambda a: str(a.advisor_id))
    if not ordered:
        return None
    candidate = ordered[(position - 1) % len(ordered)]
    return candidate if candidate.has_capacity else None


def _specialised(advisor: AdvisorSnapshot, programs: Sequence[str]) -> bool:
    wanted = {p.strip().lower() for p in programs}
    return any(s.strip().lower() in wanted for s in advisor.specializations)


def select_workload_based(
    pool: Sequence[AdvisorSnapshot], program_interest: Sequence[str] = ()
) -> Optional[AdvisorSnapshot]:
    """Least-loaded advisor with spare capacity.

    Members specialised in one of the lead's programs are preferred; if
    none of them has capacity the whole pool is considered.  Ties go to
    the higher conversion rate, then the lower ``advisor_id``.
    """
    available = [a for a in pool if a.has_capacity]
    if not available:
        return None
    if program_interest:
        specialists = [a for a in available if _specialised(a, program_interest)]
        if specialists:
            available = specialists
    return min(
        available,
        key=lambda a: (a.load_ratio, -a.conversion_rate, str(a.advisor_id)),
    )


def select_ranked(
    pool: Sequence[AdvisorSnapshot], ranked_ids: Sequence[UUID]
) -> Optional[AdvisorSnapshot]:
    """First advisor in *ranked_ids* that is in the pool and has capacity."""
    by_id: Dict[UUID, AdvisorSnapshot] = {a.advisor_id: a for a in pool}
    for advisor_id in ranked_ids:
        advisor = by_id.get(advisor_id)
        if advisor is not None and advisor.has_capacity:
            return advisor
    return None


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class AssignmentExecutor:
    """Apply a routing rule's assignment policy to a lead.

    Selection happens on fresh snapshots; the chosen advisor's capacity
    is then taken with a single conditional UPDATE.  If another writer
    took the last slot in between, the snapshot is re-read and selection
    runs again, up to ``ASSIGNMENT_MAX_RETRIES`` times.

    The round-robin cursor lives in Redis so it is shared across worker
    processes; when Redis is unavailable the ``round_robin_cursors``
    table is used instead.
    """

    def __init__(
        self,
        cache: Optional[CacheService] = None,
        ranker: Optional[AdvisorRanker] = None,
        max_retries: Optional[int] = None,
    ) -> None:
        self._cache: CacheService = cache or CacheService()
        self._ranker: AdvisorRanker = ranker or HttpAdvisorRanker()
        self._max_retries: int = (
            max_retries if max_retries is not None else settings.ASSIGNMENT_MAX_RETRIES
        )
        # Used only when neither Redis nor a cursor table is available
        self._fallback_positions: Dict[str, int] = {}

    async def _next_position(
        self, pool_key: str, cursor_repo: Optional[CursorRepository]
    ) -> int:
        position = await self._cache.incr(
            f"{_ROUND_ROBIN_KEY_PREFIX}:{pool_key}", ttl=ROUND_ROBIN_TTL
        )
        if position is not None:
            return position
        if cursor_repo is not None:
            return await cursor_repo.next_position(pool_key)
        position = self._fallback_positions.get(pool_key, 0) + 1
        self._fallback_positions[pool_key] = position
        return position

    async def _take_turn(
        self,
        pool: Sequence[AdvisorSnapshot],
        pool_key: str,
        cursor_repo: Optional[CursorRepository],
    ) -> Optional[AdvisorSnapshot]:
        """Advance the cursor until the turn lands on a member with capacity.

        Full members consume their turn, so the others keep an even share.
        At most one lap is drawn; if concurrent callers took every turn
        that had capacity, the next member with capacity after the last
        drawn turn is used.
        """
        if not any(a.has_capacity for a in pool):
            return None
        position = 0
        for _ in range(len(pool)):
            position = await self._next_position(pool_key, cursor_repo)
            selected = select_round_robin(pool, position)
            if selected is not None:
                return selected
        for offset in range(1, len(pool) + 1):
            selected = select_round_robin(pool, position + offset)
            if selected is not None:
                return selected
        return None

    async def _select(
        self,
        lead: LeadSnapshot,
        config: AssignmentConfig,
        advisor_repo: AdvisorRepository,
        cursor_repo: Optional[CursorRepository],
    ) -> AdvisorSnapshot:
        """Choose a target from a fresh snapshot or raise a capacity error."""
        if config.method is AssignmentPolicy.direct:
            target = await advisor_repo.get_snapshot(config.advisor_id)
            if target is None:
                raise AdvisorNotFoundError(f"Advisor {config.advisor_id} not found")
            if not target.has_capacity:
                raise TargetAtCapacityError(
                    f"Advisor {target.advisor_id} is inactive or at capacity "
                    f"({target.current_assignments}/{target.max_daily_assignments})"
                )
            return target

        pool = await advisor_repo.list_pool(config)
        pool = [a for a in pool if a.is_active]

        selected: Optional[AdvisorSnapshot] = None
        if pool:
            if config.method is AssignmentPolicy.round_robin:
                selected = await self._take_turn(pool, config.pool_key, cursor_repo)
            elif config.method is AssignmentPolicy.workload_based:
                selected = select_workload_based(pool, lead.program_interest)
            elif config.method is AssignmentPolicy.ai_based:
                candidates = [a for a in pool if a.has_capacity]
                if candidates:
                    ranked = await self._ranker.rank(lead, candidates)
                    selected = select_ranked(candidates, ranked)
                    if selected is None:
                        # Ranker returned nobody usable; least-loaded member instead
                        selected = select_workload_based(candidates, lead.program_interest)

        if selected is None:
            raise PoolExhaustedError(
                f"No advisor with capacity in pool '{config.pool_key}' "
                f"({len(pool)} active member(s))"
            )
        return selected

    async def assign(
        self,
        lead: LeadSnapshot,
        config: AssignmentConfig,
        advisor_repo: AdvisorRepository,
        lead_repo: LeadRepository,
        cursor_repo: Optional[CursorRepository] = None,
        rule_id: Optional[UUID] = None,
    ) -> Assignment:
        """Assign *lead* according to *config*.

        Raises ``TargetAtCapacityError`` / ``PoolExhaustedError`` when no
        advisor can take the lead, ``PersistenceConflictError`` when the
        capacity race was lost more than the retry budget allows.  No
        capacity is consumed when an error is raised.
        """
        for attempt in range(self._max_retries + 1):
            target = await self._select(lead, config, advisor_repo, cursor_repo)
            reserved = await advisor_repo.try_reserve(target.advisor_id)
            if reserved is not None:
                assigned_at = datetime.now(timezone.utc)
                await lead_repo.stamp_assignment(
                    lead.lead_id, target.advisor_id, config.method.value, assigned_at
                )
                logger.info(
                    "Lead %s assigned to advisor %s via %s (%d/%d)",
                    lead.lead_id,
                    target.advisor_id,
                    config.method.value,
                    reserved,
                    target.max_daily_assignments,
                )
                return Assignment(
                    advisor_id=target.advisor_id,
                    lead_id=lead.lead_id,
                    rule_id=rule_id,
                    method=config.method,
                    assigned_at=assigned_at,
                )
            logger.info(
                "Capacity race lost for advisor %s on lead %s (attempt %d/%d)",
                target.advisor_id,
                lead.lead_id,
                attempt + 1,
                self._max_retries + 1,
            )

        raise PersistenceConflictError(
            f"Could not reserve capacity for lead {lead.lead_id} after "
            f"{self._max_retries + 1} attempt(s)"
        )

    async def release(
        self, advisor_id: UUID, advisor_repo: AdvisorRepository
    ) -> None:
        """Return one unit of capacity, e.g. on manual reassignment."""
        await advisor_repo.release(advisor_id)

    async def recommend(
        self,
        lead: LeadSnapshot,
        advisor_repo: AdvisorRepository,
        config: Optional[AssignmentConfig] = None,
        limit: int = 5,
    ) -> List[AssignmentRecommendation]:
        """Ranked advisor suggestions with reasoning, for a human to pick from."""
        if config is not None:
            pool = await advisor_repo.list_pool(config)
        else:
            pool = await advisor_repo.list_all()
        return RecommendationRanker().recommend(lead, pool, limit=limit)
