from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.api.deps import (
    get_advisor_repo,
    get_cursor_repo,
    get_execution_log_repo,
    get_lead_repo,
    get_routing_rule_repo,
    get_routing_service,
)
from app.repositories.advisor_repository import AdvisorRepository
from app.repositories.cursor_repository import CursorRepository
from app.repositories.execution_log_repository import ExecutionLogRepository
from app.repositories.lead_repository import LeadRepository
from app.repositories.routing_rule_repository import RoutingRuleRepository
from app.schemas.lead import LeadSnapshot, LeadSnapshotInput
from app.schemas.routing import (
    RouteLeadResponse,
    RoutingPreviewResponse,
    RoutingRuleCreate,
    RoutingRuleOut,
    RoutingRuleUpdate,
)
from app.services.routing_service import RoutingService

router = APIRouter(prefix="/routing", tags=["Routing"])

# Placeholder id for previews of leads that are not stored yet
_PREVIEW_LEAD_ID = UUID(int=0)


@router.post("/leads/{lead_id}/route", response_model=RouteLeadResponse)
async def route_lead(
    lead_id: UUID,
    strict: bool = Query(False, description="Return 409 instead of needs_manual_routing"),
    service: RoutingService = Depends(get_routing_service),
    rule_repo: RoutingRuleRepository = Depends(get_routing_rule_repo),
    lead_repo: LeadRepository = Depends(get_lead_repo),
    advisor_repo: AdvisorRepository = Depends(get_advisor_repo),
    log_repo: ExecutionLogRepository = Depends(get_execution_log_repo),
    cursor_repo: CursorRepository = Depends(get_cursor_repo),
) -> RouteLeadResponse:
    """Route one lead through the active rules.

    Called by lead ingestion after a lead is created or re-qualified.
    A lead no rule can place comes back with ``needs_manual_routing``.
    """
    return await service.route_lead(
        lead_id,
        rule_repo,
        lead_repo,
        advisor_repo,
        log_repo,
        cursor_repo=cursor_repo,
        strict=strict,
    )


@router.post("/preview", response_model=RoutingPreviewResponse)
async def preview_routing(
    body: LeadSnapshotInput,
    service: RoutingService = Depends(get_routing_service),
    rule_repo: RoutingRuleRepository = Depends(get_routing_rule_repo),
) -> RoutingPreviewResponse:
    """Show which active rules a lead would match, winner first."""
    data = body.model_dump()
    data["lead_id"] = data.get("lead_id") or _PREVIEW_LEAD_ID
    return await service.preview(LeadSnapshot(**data), rule_repo)


@router.get("/rules", response_model=List[RoutingRuleOut])
async def list_rules(
    service: RoutingService = Depends(get_routing_service),
    rule_repo: RoutingRuleRepository = Depends(get_routing_rule_repo),
    log_repo: ExecutionLogRepository = Depends(get_execution_log_repo),
) -> List[RoutingRuleOut]:
    return await service.list_rules(rule_repo, log_repo)


@router.post("/rules", response_model=RoutingRuleOut, status_code=201)
async def create_rule(
    body: RoutingRuleCreate,
    service: RoutingService = Depends(get_routing_service),
    rule_repo: RoutingRuleRepository = Depends(get_routing_rule_repo),
) -> RoutingRuleOut:
    return await service.create_rule(body, rule_repo)


@router.patch("/rules/{rule_id}", response_model=RoutingRuleOut)
async def update_rule(
    rule_id: UUID,
    body: RoutingRuleUpdate,
    service: RoutingService = Depends(get_routing_service),
    rule_repo: RoutingRuleRepository = Depends(get_routing_rule_repo),
    log_repo: ExecutionLogRepository = Depends(get_execution_log_repo),
) -> RoutingRuleOut:
    """Edit a rule; set ``is_active`` to false to retire it."""
    return await service.update_rule(rule_id, body, rule_repo, log_repo)
