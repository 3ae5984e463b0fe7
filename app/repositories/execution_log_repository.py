from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import case, func, select

from app.models.rule_execution_log import RuleExecutionLog
from app.repositories.base import BaseRepository


class ExecutionLogRepository(BaseRepository):
    """Append-only access to ``rule_execution_logs``.

    There is deliberately no update or delete method: rule statistics
    are always aggregated from the log rather than stored on the rule.
    """

    async def record(
        self,
        rule_id: UUID,
        lead_id: UUID,
        result: str,
        execution_time_ms: int,
        assigned_to: Optional[UUID] = None,
        error_message: Optional[str] = None,
    ) -> RuleExecutionLog:
        """Append one terminal log row for a routing attempt."""
        log = RuleExecutionLog(
            rule_id=rule_id,
            lead_id=lead_id,
            execution_result=result,
            execution_time_ms=execution_time_ms,
            assigned_to=assigned_to,
            error_message=error_message,
        )
        return await self._persist(log)

    async def stats_by_rule(self, window_days: int = 30) -> Dict[UUID, Dict[str, Any]]:
        """Aggregate match count, success rate and mean latency per rule.

        Only rows inside the trailing *window_days* are counted.
        ``skipped`` rows count as matches but not as successes.
        """
        since = datetime.now(timezone.utc) - timedelta(days=window_days)
        successes = func.sum(
            case((RuleExecutionLog.execution_result == "success", 1), else_=0)
        )
        result = await self._db.execute(
            select(
                RuleExecutionLog.rule_id,
                func.count().label("match_count"),
                successes.label("success_count"),
                func.avg(RuleExecutionLog.execution_time_ms).label("avg_ms"),
            )
            .where(RuleExecutionLog.created_at >= since)
            .group_by(RuleExecutionLog.rule_id)
        )
        stats: Dict[UUID, Dict[str, Any]] = {}
        for row in result.all():
            match_count = row.match_count or 0
            success_count = row.success_count or 0
            stats[row.rule_id] = {
                "match_count": match_count,
                "success_rate": (
                    round(success_count / match_count * 100, 2) if match_count else 0.0
                ),
                "average_execution_time_ms": round(float(row.avg_ms or 0), 2),
            }
        return stats

    async def list_for_lead(self, lead_id: UUID) -> List[RuleExecutionLog]:
        result = await self._db.execute(
            select(RuleExecutionLog)
            .where(RuleExecutionLog.lead_id == lead_id)
            .order_by(RuleExecutionLog.created_at)
        )
        return list(result.scalars().all())
