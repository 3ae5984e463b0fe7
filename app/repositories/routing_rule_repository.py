from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import select

from app.models.routing_rule import RoutingRule
from app.repositories.base import BaseRepository


class RoutingRuleRepository(BaseRepository):
    """Encapsulates queries against the ``lead_routing_rules`` table.

    Rules are never deleted; deactivation is a soft ``is_active`` update
    so historical execution logs keep their foreign key.
    """

    async def get_by_id(self, rule_id: UUID) -> Optional[RoutingRule]:
        result = await self._db.execute(
            select(RoutingRule).where(RoutingRule.rule_id == rule_id)
        )
        return result.scalar_one_or_none()

    async def list_active(self) -> List[RoutingRule]:
        """Return active rules in evaluation order."""
        result = await self._db.execute(
            select(RoutingRule)
            .where(RoutingRule.is_active.is_(True))
            .order_by(RoutingRule.priority.desc(), RoutingRule.rule_id)
        )
        return list(result.scalars().all())

    async def list_all(self) -> List[RoutingRule]:
        result = await self._db.execute(
            select(RoutingRule).order_by(
                RoutingRule.priority.desc(), RoutingRule.rule_id
            )
        )
        return list(result.scalars().all())

    async def create(self, **kwargs: Any) -> RoutingRule:
        """Insert a new rule and return the model instance."""
        return await self._persist(RoutingRule(**kwargs), refresh=True)

    async def update(self, rule: RoutingRule, **changes: Any) -> RoutingRule:
        """Apply *changes* to an existing rule instance."""
        for key, value in changes.items():
            setattr(rule, key, value)
        await self._db.flush()
        await self._db.refresh(rule)
        return rule
