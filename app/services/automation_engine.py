import asyncio
import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import CacheService, CacheUnavailableError
from app.core.config import settings
from app.core.constants import TERMINAL_STATUSES
from app.core.exceptions import InvalidRuleConfigError
from app.repositories.automation_rule_repository import AutomationRuleRepository
from app.repositories.automation_state_repository import AutomationStateRepository
from app.repositories.lead_repository import LeadRepository
from app.schemas.automation import (
    AutomationRuleDefinition,
    RuleTickReport,
    TickReport,
)
from app.schemas.lead import LeadSnapshot
from app.services.action_dispatcher import ActionContext, ActionDispatcher
from app.services.automation_triggers import (
    decide,
    state_changed,
    validate_trigger_conditions,
)

logger = logging.getLogger(__name__)

# Redis key prefix for per-rule tick locks
_LOCK_KEY_PREFIX = "automation:rule"


class RuleRunState(str, Enum):
    idle = "idle"
    evaluating = "evaluating"
    fired = "fired"
    skipped = "skipped"


def load_automation_rule(row: Any, dispatcher: ActionDispatcher) -> AutomationRuleDefinition:
    """Compile a stored automation rule, rejecting unknown triggers/actions."""
    get = row.get if isinstance(row, dict) else lambda k: getattr(row, k, None)
    rule_id = get("rule_id")
    try:
        rule = AutomationRuleDefinition(
            rule_id=rule_id,
            name=get("name") or "",
            trigger_type=get("trigger_type"),
            conditions=get("conditions") or {},
            actions=get("actions") or [],
            is_active=bool(get("is_active")),
        )
    except ValidationError as exc:
        raise InvalidRuleConfigError(f"Automation rule {rule_id}: {exc}") from exc
    try:
        validate_trigger_conditions(rule.trigger_type, rule.conditions)
        if not rule.actions:
            raise InvalidRuleConfigError("at least one action is required")
        dispatcher.validate(rule.actions)
    except InvalidRuleConfigError as exc:
        raise InvalidRuleConfigError(f"Automation rule {rule_id}: {exc.detail}") from exc
    return rule


class AutomationTriggerEngine:
    """Evaluates automation rules against open leads on each tick.

    Per rule, a tick moves ``idle``, ``evaluating``, then ``fired`` or ``skipped``, then back to ``idle``.
    The in-memory state only guards against overlap inside this process;
    across processes a short Redis lock per rule does the same, and the
    per-lead marker is written with compare-and-set so a lead is only
    acted on by whichever tick wins the marker update.
    """

    def __init__(
        self,
        session_factory: Callable[..., AsyncSession],
        dispatcher: ActionDispatcher,
        cache: Optional[CacheService] = None,
        lock_ttl: Optional[int] = None,
    ) -> None:
        self._session_factory = session_factory
        self._dispatcher = dispatcher
        self._cache: CacheService = cache or CacheService()
        self._lock_ttl: int = lock_ttl if lock_ttl is not None else settings.AUTOMATION_LOCK_TTL
        self._states: Dict[UUID, RuleRunState] = {}

    def state_of(self, rule_id: UUID) -> RuleRunState:
        return self._states.get(rule_id, RuleRunState.idle)

    def validate_rule(self, row: Any) -> AutomationRuleDefinition:
        return load_automation_rule(row, self._dispatcher)

    async def _load_rules(self) -> List[AutomationRuleDefinition]:
        async with self._session_factory() as session:
            rows = await AutomationRuleRepository(session).list_active()
        rules = []
        for row in rows:
            try:
                rules.append(self.validate_rule(row))
            except InvalidRuleConfigError as exc:
                logger.error("Skipping malformed automation rule: %s", exc.detail)
        return rules

    async def tick(
        self,
        now: Optional[datetime] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> TickReport:
        """Run every active rule once against the current open leads."""
        now = now or datetime.now(timezone.utc)
        report = TickReport(started_at=now)
        for rule in await self._load_rules():
            if stop_event is not None and stop_event.is_set():
                report.cancelled = True
                break
            rule_report = await self._run_rule(rule, now, stop_event)
            report.rules.append(rule_report)
            if stop_event is not None and stop_event.is_set():
                report.cancelled = True
                break
        logger.info(
            "Automation tick finished: %d rule(s), %d firing(s)%s",
            len(report.rules),
            report.total_fired,
            " (cancelled)" if report.cancelled else "",
        )
        return report

    async def _run_rule(
        self,
        rule: AutomationRuleDefinition,
        now: datetime,
        stop_event: Optional[asyncio.Event],
    ) -> RuleTickReport:
        if self.state_of(rule.rule_id) is RuleRunState.evaluating:
            logger.info("Rule '%s' still evaluating from a previous tick; skipping", rule.name)
            return RuleTickReport(rule_id=rule.rule_id, state=RuleRunState.skipped.value)

        lock_key = f"{_LOCK_KEY_PREFIX}:{rule.rule_id}"
        try:
            token = await self._cache.acquire_lock(lock_key, self._lock_ttl)
            contended = token is None and self._cache.is_available
        except CacheUnavailableError:
            logger.warning(
                "Lock for rule '%s' unavailable; relying on lead markers", rule.name
            )
            token, contended = None, False
        if contended:
            logger.info("Rule '%s' is being evaluated elsewhere; skipping", rule.name)
            return RuleTickReport(rule_id=rule.rule_id, state=RuleRunState.skipped.value)

        self._states[rule.rule_id] = RuleRunState.evaluating
        rule_report = RuleTickReport(rule_id=rule.rule_id, state=RuleRunState.skipped.value)
        try:
            async with self._session_factory() as session:
                # A rollback after a failed lead expires the loaded rows
                snapshots = [
                    LeadSnapshot.model_validate(lead)
                    for lead in await LeadRepository(session).list_open()
                ]
                for snapshot in snapshots:
                    if stop_event is not None and stop_event.is_set():
                        break
                    rule_report.leads_evaluated += 1
                    try:
                        outcome = await self._process_lead(rule, snapshot, now, session)
                    except Exception:
                        await session.rollback()
                        logger.error(
                            "Automation rule '%s' failed on lead %s",
                            rule.name,
                            snapshot.lead_id,
                            exc_info=True,
                        )
                        continue
                    if outcome is None:
                        continue
                    rule_report.fired += 1
                    if outcome:
                        rule_report.fully_successful += 1
                    else:
                        rule_report.failed_actions += 1
                if rule_report.leads_evaluated:
                    await self._record_evaluations(rule, rule_report.leads_evaluated, session)
        finally:
            if token is not None:
                await self._cache.release_lock(lock_key, token)
            self._states[rule.rule_id] = RuleRunState.idle

        rule_report.state = (
            RuleRunState.fired.value if rule_report.fired else RuleRunState.skipped.value
        )
        return rule_report

    async def _record_evaluations(
        self, rule: AutomationRuleDefinition, count: int, session: AsyncSession
    ) -> None:
        """Add this run's evaluations to the rule's success-rate denominator."""
        rule_repo = AutomationRuleRepository(session)
        try:
            await rule_repo.record_evaluations(rule.rule_id, count)
            await rule_repo.commit()
        except SQLAlchemyError:
            await session.rollback()
            logger.error(
                "Could not record evaluations for automation rule '%s'",
                rule.name,
                exc_info=True,
            )

    async def _process_lead(
        self,
        rule: AutomationRuleDefinition,
        lead: LeadSnapshot,
        now: datetime,
        session: AsyncSession,
    ) -> Optional[bool]:
        """Evaluate one lead.

        Returns ``None`` when the rule did not fire (or another tick won
        the marker), otherwise whether every action succeeded.
        """
        if lead.status in TERMINAL_STATUSES:
            return None
        state_repo = AutomationStateRepository(session)
        state = await state_repo.get(rule.rule_id, lead.lead_id)
        decision = decide(rule, lead, state, now)

        if state.version is not None and not state_changed(state, decision.next_state):
            return None
        won = await state_repo.compare_and_set(
            rule.rule_id, lead.lead_id, state.version, decision.next_state
        )
        await state_repo.commit()
        if not won:
            logger.info(
                "Marker for rule '%s' / lead %s changed concurrently; not firing",
                rule.name,
                lead.lead_id,
            )
            return None
        if not decision.fire:
            return None

        started = time.perf_counter()
        logger.info(
            "Automation rule '%s' fired for lead %s: %s",
            rule.name,
            lead.lead_id,
            decision.reason,
        )
        report = await self._dispatcher.dispatch(
            rule.actions, ActionContext(rule=rule, lead=lead, fired_at=now)
        )
        rule_repo = AutomationRuleRepository(session)
        await rule_repo.record_firing(
            rule.rule_id,
            lead.lead_id,
            report.fully_successful,
            int((time.perf_counter() - started) * 1000),
            report.failed,
            now,
        )
        await rule_repo.commit()
        return report.fully_successful
