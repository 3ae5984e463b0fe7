from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import select, update

from app.models.automation_execution_log import AutomationExecutionLog
from app.models.automation_rule import AutomationRule
from app.repositories.base import BaseRepository


class AutomationRuleRepository(BaseRepository):
    """Queries against ``automation_rules`` and their execution log."""

    async def get_by_id(self, rule_id: UUID) -> Optional[AutomationRule]:
        result = await self._db.execute(
            select(AutomationRule).where(AutomationRule.rule_id == rule_id)
        )
        return result.scalar_one_or_none()

    async def list_active(self) -> List[AutomationRule]:
        result = await self._db.execute(
            select(AutomationRule)
            .where(AutomationRule.is_active.is_(True))
            .order_by(AutomationRule.created_at, AutomationRule.rule_id)
        )
        return list(result.scalars().all())

    async def list_all(self) -> List[AutomationRule]:
        result = await self._db.execute(
            select(AutomationRule).order_by(AutomationRule.name)
        )
        return list(result.scalars().all())

    async def create(self, **kwargs: Any) -> AutomationRule:
        return await self._persist(AutomationRule(**kwargs), refresh=True)

    async def record_firing(
        self,
        rule_id: UUID,
        lead_id: UUID,
        fully_successful: bool,
        execution_time_ms: int,
        failed_actions: List[str],
        executed_at: datetime,
    ) -> None:
        """Append the firing to the log and bump the rule's rollup counters.

        The counters are incremented in SQL so concurrent firings on
        different instances never lose an update.
        """
        self._db.add(
            AutomationExecutionLog(
                rule_id=rule_id,
                lead_id=lead_id,
                execution_result="success" if fully_successful else "failure",
                execution_time_ms=execution_time_ms,
                failed_actions=failed_actions or None,
                error_message=(
                    "Failed actions: " + ", ".join(failed_actions)
                    if failed_actions
                    else None
                ),
            )
        )
        await self._db.execute(
            update(AutomationRule)
            .where(AutomationRule.rule_id == rule_id)
            .values(
                execution_count=AutomationRule.execution_count + 1,
                success_count=AutomationRule.success_count
                + (1 if fully_successful else 0),
                last_executed=executed_at,
            )
        )

    async def record_evaluations(self, rule_id: UUID, count: int) -> None:
        """Count *count* lead evaluations towards the rule's success rate."""
        await self._db.execute(
            update(AutomationRule)
            .where(AutomationRule.rule_id == rule_id)
            .values(evaluation_count=AutomationRule.evaluation_count + count)
        )
