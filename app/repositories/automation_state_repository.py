from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert

from app.models.automation_lead_state import AutomationLeadState
from app.repositories.base import BaseRepository
from app.schemas.automation import TriggerState

_STATE_FIELDS = (
    "observed_score",
    "observed_status",
    "observed_activity_at",
    "in_band",
    "nudged_for",
)


class AutomationStateRepository(BaseRepository):
    """Per-(rule, lead) trigger markers with optimistic concurrency."""

    async def get(self, rule_id: UUID, lead_id: UUID) -> TriggerState:
        """Return the stored marker, or an empty one (``version=None``)."""
        result = await self._db.execute(
            select(AutomationLeadState).where(
                AutomationLeadState.rule_id == rule_id,
                AutomationLeadState.lead_id == lead_id,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            return TriggerState()
        return TriggerState.model_validate(row)

    async def compare_and_set(
        self,
        rule_id: UUID,
        lead_id: UUID,
        expected_version: Optional[int],
        new_state: TriggerState,
    ) -> bool:
        """Store *new_state* only if nobody wrote since *expected_version*.

        A first write is an ``INSERT ... ON CONFLICT DO NOTHING``; later
        writes are ``UPDATE ... WHERE version = expected``.  Returns
        ``True`` when this caller won.
        """
        values = {f: getattr(new_state, f) for f in _STATE_FIELDS}
        if expected_version is None:
            result = await self._db.execute(
                insert(AutomationLeadState)
                .values(rule_id=rule_id, lead_id=lead_id, version=1, **values)
                .on_conflict_do_nothing(constraint="uq_automation_lead_state")
                .returning(AutomationLeadState.state_id)
            )
            return result.scalar_one_or_none() is not None

        result = await self._db.execute(
            update(AutomationLeadState)
            .where(
                AutomationLeadState.rule_id == rule_id,
                AutomationLeadState.lead_id == lead_id,
                AutomationLeadState.version == expected_version,
            )
            .values(version=AutomationLeadState.version + 1, **values)
            .returning(AutomationLeadState.version)
        )
        return result.scalar_one_or_none() is not None
