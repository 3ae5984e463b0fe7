import logging
import time
from typing import List, Optional
from uuid import UUID

from app.core.config import settings
from app.core.constants import TERMINAL_STATUSES
from app.core.exceptions import (
    AdvisorNotFoundError,
    AssignmentError,
    LeadNotFoundError,
    RoutingRuleNotFoundError,
)
from app.models.routing_rule import RoutingRule
from app.repositories.advisor_repository import AdvisorRepository
from app.repositories.cursor_repository import CursorRepository
from app.repositories.execution_log_repository import ExecutionLogRepository
from app.repositories.lead_repository import LeadRepository
from app.repositories.routing_rule_repository import RoutingRuleRepository
from app.schemas.common import ExecutionResult
from app.schemas.conditions import dump_conditions, parse_conditions
from app.schemas.lead import LeadSnapshot
from app.schemas.routing import (
    RouteLeadResponse,
    RoutingPreviewResponse,
    RoutingRuleCreate,
    RoutingRuleOut,
    RoutingRuleUpdate,
    RulePreviewMatch,
)
from app.services.assignment_executor import AssignmentExecutor
from app.services.rule_evaluator import RuleEvaluator, load_rule

logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _rule_out(rule: RoutingRule, stats: Optional[dict] = None) -> RoutingRuleOut:
    stats = stats or {}
    return RoutingRuleOut(
        rule_id=rule.rule_id,
        name=rule.name,
        description=rule.description,
        priority=rule.priority,
        is_active=rule.is_active,
        conditions=rule.conditions or {},
        assignment_config=rule.assignment_config or {},
        match_count=stats.get("match_count", 0),
        success_rate=stats.get("success_rate", 0.0),
        average_execution_time_ms=stats.get("average_execution_time_ms", 0.0),
    )


class RoutingService:
    """Route leads through the active rule set and record the outcome.

    Every routing attempt that matches a rule writes exactly one
    execution-log row: ``success`` when an advisor was assigned,
    ``failure`` when the assignment policy could not place the lead and
    ``skipped`` when the lead was already assigned or closed.
    """

    def __init__(
        self,
        executor: Optional[AssignmentExecutor] = None,
        stats_window_days: Optional[int] = None,
    ) -> None:
        self._executor = executor or AssignmentExecutor()
        self._window_days: int = (
            stats_window_days
            if stats_window_days is not None
            else settings.RULE_STATS_WINDOW_DAYS
        )

    async def load_evaluator(self, rule_repo: RoutingRuleRepository) -> RuleEvaluator:
        rows = await rule_repo.list_active()
        return RuleEvaluator.from_rows(rows)

    async def route_lead(
        self,
        lead_id: UUID,
        rule_repo: RoutingRuleRepository,
        lead_repo: LeadRepository,
        advisor_repo: AdvisorRepository,
        log_repo: ExecutionLogRepository,
        cursor_repo: Optional[CursorRepository] = None,
        strict: bool = False,
    ) -> RouteLeadResponse:
        """Evaluate the rules for one lead and apply the winning assignment.

        Assignment failures are returned as ``needs_manual_routing``
        unless *strict* is set, in which case the ``AssignmentError`` is
        re-raised after the failure has been logged.
        """
        lead = await lead_repo.get_for_update(lead_id)
        if lead is None:
            raise LeadNotFoundError(f"Lead {lead_id} not found")
        snapshot = LeadSnapshot.model_validate(lead)

        evaluator = await self.load_evaluator(rule_repo)
        started = time.perf_counter()
        match = evaluator.evaluate(snapshot)
        if match is None:
            logger.info("No routing rule matched lead %s", lead_id)
            await lead_repo.commit()
            return RouteLeadResponse(
                lead_id=lead_id,
                routed=False,
                needs_manual_routing=True,
                reason="No matching routing rule",
            )

        rule = match.rule
        if snapshot.assigned_to is not None or snapshot.status in TERMINAL_STATUSES:
            reason = (
                f"Lead is {snapshot.status}"
                if snapshot.status in TERMINAL_STATUSES
                else f"Lead already assigned to {snapshot.assigned_to}"
            )
            await log_repo.record(
                rule.rule_id,
                lead_id,
                ExecutionResult.skipped.value,
                _elapsed_ms(started),
                assigned_to=snapshot.assigned_to,
                error_message=reason,
            )
            await log_repo.commit()
            return RouteLeadResponse(
                lead_id=lead_id,
                routed=False,
                result=ExecutionResult.skipped,
                rule_id=rule.rule_id,
                rule_name=rule.name,
                matched_conditions=match.matched_conditions,
                reason=reason,
            )

        try:
            assignment = await self._executor.assign(
                snapshot,
                rule.assignment_config,
                advisor_repo,
                lead_repo,
                cursor_repo=cursor_repo,
                rule_id=rule.rule_id,
            )
        except (AssignmentError, AdvisorNotFoundError) as exc:
            logger.warning(
                "Rule '%s' matched lead %s but assignment failed: %s",
                rule.name,
                lead_id,
                exc.detail,
            )
            await log_repo.record(
                rule.rule_id,
                lead_id,
                ExecutionResult.failure.value,
                _elapsed_ms(started),
                error_message=exc.detail,
            )
            await log_repo.commit()
            if strict:
                raise
            return RouteLeadResponse(
                lead_id=lead_id,
                routed=False,
                result=ExecutionResult.failure,
                rule_id=rule.rule_id,
                rule_name=rule.name,
                matched_conditions=match.matched_conditions,
                needs_manual_routing=True,
                reason=exc.detail,
            )

        await log_repo.record(
            rule.rule_id,
            lead_id,
            ExecutionResult.success.value,
            _elapsed_ms(started),
            assigned_to=assignment.advisor_id,
        )
        await log_repo.commit()
        return RouteLeadResponse(
            lead_id=lead_id,
            routed=True,
            result=ExecutionResult.success,
            rule_id=rule.rule_id,
            rule_name=rule.name,
            matched_conditions=match.matched_conditions,
            assignment=assignment,
        )

    async def preview(
        self, snapshot: LeadSnapshot, rule_repo: RoutingRuleRepository
    ) -> RoutingPreviewResponse:
        """Show which rules a lead would match without assigning anything."""
        evaluator = await self.load_evaluator(rule_repo)
        matches = [
            RulePreviewMatch(
                rule_id=m.rule.rule_id,
                rule_name=m.rule.name,
                priority=m.rule.priority,
                matched_conditions=m.matched_conditions,
            )
            for m in evaluator.evaluate_all(snapshot)
        ]
        return RoutingPreviewResponse(
            winner=matches[0] if matches else None,
            matches=matches,
            warnings=evaluator.warnings,
        )

    async def list_rules(
        self, rule_repo: RoutingRuleRepository, log_repo: ExecutionLogRepository
    ) -> List[RoutingRuleOut]:
        rules = await rule_repo.list_all()
        stats = await log_repo.stats_by_rule(self._window_days)
        return [_rule_out(r, stats.get(r.rule_id)) for r in rules]

    async def create_rule(
        self, data: RoutingRuleCreate, rule_repo: RoutingRuleRepository
    ) -> RoutingRuleOut:
        """Store a rule in canonical (fully tagged) condition form."""
        rule = await rule_repo.create(
            name=data.name,
            description=data.description,
            priority=data.priority,
            is_active=data.is_active,
            conditions=dump_conditions(parse_conditions(data.conditions)),
            assignment_config=data.assignment_config.model_dump(
                mode="json", exclude_none=True
            ),
        )
        load_rule(rule)
        await rule_repo.commit()
        logger.info("Created routing rule '%s' (%s)", rule.name, rule.rule_id)
        return _rule_out(rule)

    async def update_rule(
        self,
        rule_id: UUID,
        data: RoutingRuleUpdate,
        rule_repo: RoutingRuleRepository,
        log_repo: ExecutionLogRepository,
    ) -> RoutingRuleOut:
        """Edit or soft-(de)activate a rule."""
        rule = await rule_repo.get_by_id(rule_id)
        if rule is None:
            raise RoutingRuleNotFoundError(f"Routing rule {rule_id} not found")
        changes = {
            key: value
            for key, value in data.model_dump(exclude_unset=True).items()
            if value is not None or key == "description"
        }
        if "conditions" in changes:
            changes["conditions"] = dump_conditions(
                parse_conditions(changes["conditions"])
            )
        if data.assignment_config is not None:
            changes["assignment_config"] = data.assignment_config.model_dump(
                mode="json", exclude_none=True
            )
        rule = await rule_repo.update(rule, **changes)
        load_rule(rule)
        await rule_repo.commit()
        stats = await log_repo.stats_by_rule(self._window_days)
        return _rule_out(rule, stats.get(rule.rule_id))
