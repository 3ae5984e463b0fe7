import asyncio
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends

from app.api.deps import get_automation_engine, get_automation_rule_repo
from app.models.automation_rule import AutomationRule
from app.repositories.automation_rule_repository import AutomationRuleRepository
from app.schemas.automation import AutomationRuleCreate, AutomationRuleOut, TickReport
from app.services.automation_engine import AutomationTriggerEngine

router = APIRouter(prefix="/automation", tags=["Automation"])


def _rule_out(rule: AutomationRule) -> AutomationRuleOut:
    return AutomationRuleOut(
        rule_id=rule.rule_id,
        name=rule.name,
        description=rule.description,
        trigger_type=rule.trigger_type,
        conditions=rule.conditions or {},
        actions=rule.actions or [],
        is_active=rule.is_active,
        evaluation_count=rule.evaluation_count or 0,
        execution_count=rule.execution_count or 0,
        success_rate=rule.success_rate,
        last_executed=rule.last_executed,
    )


@router.get("/rules", response_model=List[AutomationRuleOut])
async def list_automation_rules(
    rule_repo: AutomationRuleRepository = Depends(get_automation_rule_repo),
) -> List[AutomationRuleOut]:
    return [_rule_out(r) for r in await rule_repo.list_all()]


@router.post("/rules", response_model=AutomationRuleOut, status_code=201)
async def create_automation_rule(
    body: AutomationRuleCreate,
    engine: AutomationTriggerEngine = Depends(get_automation_engine),
    rule_repo: AutomationRuleRepository = Depends(get_automation_rule_repo),
) -> AutomationRuleOut:
    """Create a rule; unknown triggers, conditions or actions are rejected."""
    data = body.model_dump(mode="json")
    engine.validate_rule({**data, "rule_id": UUID(int=0)})
    rule = await rule_repo.create(**data)
    await rule_repo.commit()
    return _rule_out(rule)


@router.post("/tick", response_model=TickReport)
async def run_tick(
    engine: AutomationTriggerEngine = Depends(get_automation_engine),
) -> TickReport:
    """Run one automation tick now (also what the background loop does)."""
    return await engine.tick(stop_event=asyncio.Event())
