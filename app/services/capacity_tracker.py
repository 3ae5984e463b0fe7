import logging
import math
from typing import List, Sequence

from app.core.constants import OVERLOADED_UTILIZATION, UNDERUTILIZED_UTILIZATION
from app.models.team import Team
from app.repositories.advisor_repository import AdvisorRepository, to_snapshot
from app.schemas.capacity import (
    AdvisorSnapshot,
    TeamCapacity,
    WorkloadOptimization,
    WorkloadRecommendation,
)

logger = logging.getLogger(__name__)


def team_capacity(team: Team) -> TeamCapacity:
    """Snapshot a team and its members; totals are derived on the model."""
    return TeamCapacity(
        team_id=team.team_id,
        name=team.name,
        region=team.region,
        specializations=tuple(team.specializations or ()),
        members=tuple(to_snapshot(m) for m in team.members),
    )


def balance_score(utilizations: Sequence[float]) -> float:
    """``100 - stddev(utilization)``, floored at 0; 100 means perfectly even."""
    if not utilizations:
        return 100.0
    mean = sum(utilizations) / len(utilizations)
    variance = sum((u - mean) ** 2 for u in utilizations) / len(utilizations)
    return round(max(0.0, 100.0 - math.sqrt(variance)), 2)


def optimize_workload(advisors: Sequence[AdvisorSnapshot]) -> WorkloadOptimization:
    """Flag overloaded and under-used advisors and score the overall balance."""
    active = [a for a in advisors if a.is_active and a.max_daily_assignments > 0]
    recommendations: List[WorkloadRecommendation] = []

    for advisor in active:
        if advisor.utilization > OVERLOADED_UTILIZATION:
            recommendations.append(
                WorkloadRecommendation(
                    type="reduce_load",
                    description=(
                        f"{advisor.full_name} is at {advisor.utilization:.0f}% "
                        "capacity. Consider redistributing leads."
                    ),
                    impact="High - prevent burnout and maintain quality",
                    advisor_id=advisor.advisor_id,
                )
            )
    for advisor in active:
        if advisor.utilization < UNDERUTILIZED_UTILIZATION:
            spare = advisor.max_daily_assignments - advisor.current_assignments
            recommendations.append(
                WorkloadRecommendation(
                    type="redistribute",
                    description=(
                        f"{advisor.full_name} has capacity for {spare} more leads."
                    ),
                    impact="Medium - improve resource utilization",
                    advisor_id=advisor.advisor_id,
                )
            )

    return WorkloadOptimization(
        recommendations=recommendations,
        balance_score=balance_score([a.utilization for a in active]),
    )


class CapacityTracker:
    """Read side of advisor capacity: team snapshots and balance reports."""

    async def get_team_capacity(
        self, advisor_repo: AdvisorRepository
    ) -> List[TeamCapacity]:
        teams = await advisor_repo.list_teams_with_members()
        return [team_capacity(t) for t in teams]

    async def get_workload_optimization(
        self, advisor_repo: AdvisorRepository
    ) -> WorkloadOptimization:
        advisors = await advisor_repo.list_all()
        return optimize_workload(advisors)

    async def reset_daily(self, advisor_repo: AdvisorRepository) -> int:
        """End-of-day reset of every advisor's assignment counter."""
        count = await advisor_repo.reset_daily_assignments()
        await advisor_repo.commit()
        logger.info("Daily assignment counters reset for %d advisor(s)", count)
        return count
