from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.api.deps import (
    get_advisor_repo,
    get_assignment_executor,
    get_capacity_tracker,
    get_lead_repo,
)
from app.core.exceptions import LeadNotFoundError
from app.repositories.advisor_repository import AdvisorRepository
from app.repositories.lead_repository import LeadRepository
from app.schemas.capacity import (
    AssignmentRecommendation,
    TeamCapacity,
    WorkloadOptimization,
)
from app.schemas.lead import LeadSnapshot
from app.services.assignment_executor import AssignmentExecutor
from app.services.capacity_tracker import CapacityTracker

router = APIRouter(prefix="/capacity", tags=["Capacity"])


@router.get("/teams", response_model=List[TeamCapacity])
async def team_capacity(
    tracker: CapacityTracker = Depends(get_capacity_tracker),
    advisor_repo: AdvisorRepository = Depends(get_advisor_repo),
) -> List[TeamCapacity]:
    return await tracker.get_team_capacity(advisor_repo)


@router.get("/workload", response_model=WorkloadOptimization)
async def workload_optimization(
    tracker: CapacityTracker = Depends(get_capacity_tracker),
    advisor_repo: AdvisorRepository = Depends(get_advisor_repo),
) -> WorkloadOptimization:
    return await tracker.get_workload_optimization(advisor_repo)


@router.get(
    "/recommendations/{lead_id}", response_model=List[AssignmentRecommendation]
)
async def advisor_recommendations(
    lead_id: UUID,
    limit: int = Query(5, ge=1, le=50),
    executor: AssignmentExecutor = Depends(get_assignment_executor),
    lead_repo: LeadRepository = Depends(get_lead_repo),
    advisor_repo: AdvisorRepository = Depends(get_advisor_repo),
) -> List[AssignmentRecommendation]:
    """Advisors ranked for a lead, with the reasoning behind each score."""
    lead = await lead_repo.get_by_id(lead_id)
    if lead is None:
        raise LeadNotFoundError(f"Lead {lead_id} not found")
    return await executor.recommend(
        LeadSnapshot.model_validate(lead), advisor_repo, limit=limit
    )
