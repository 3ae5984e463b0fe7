from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update

from app.core.constants import OPEN_STATUSES
from app.models.lead import Lead
from app.repositories.base import BaseRepository


class LeadRepository(BaseRepository):
    """Encapsulates every SQL query that touches the ``leads`` table."""

    async def get_by_id(self, lead_id: UUID) -> Optional[Lead]:
        """Return a single lead by primary key, or ``None``."""
        result = await self._db.execute(select(Lead).where(Lead.lead_id == lead_id))
        return result.scalar_one_or_none()

    async def get_for_update(self, lead_id: UUID) -> Optional[Lead]:
        """Return a lead with a row lock held until the transaction ends."""
        result = await self._db.execute(
            select(Lead).where(Lead.lead_id == lead_id).with_for_update()
        )
        return result.scalar_one_or_none()

    async def list_open(self, limit: Optional[int] = None) -> List[Lead]:
        """Return leads that are neither converted nor lost, oldest first."""
        query = (
            select(Lead)
            .where(Lead.status.in_(sorted(OPEN_STATUSES)))
            .order_by(Lead.created_at, Lead.lead_id)
        )
        if limit is not None:
            query = query.limit(limit)
        result = await self._db.execute(query)
        return list(result.scalars().all())

    async def stamp_assignment(
        self,
        lead_id: UUID,
        advisor_id: UUID,
        method: str,
        assigned_at: datetime,
    ) -> None:
        """Record the assignee on the lead."""
        await self._db.execute(
            update(Lead)
            .where(Lead.lead_id == lead_id)
            .values(
                assigned_to=advisor_id,
                assigned_at=assigned_at,
                assignment_method=method,
            )
        )

    async def set_qualification_stage(self, lead_id: UUID, stage: str) -> None:
        """Cache the qualification band on the lead for badges and bulk runs."""
        await self._db.execute(
            update(Lead).where(Lead.lead_id == lead_id).values(qualification_stage=stage)
        )

    async def set_priority(self, lead_id: UUID, priority: str) -> None:
        await self._db.execute(
            update(Lead).where(Lead.lead_id == lead_id).values(priority=priority)
        )

    async def clear_assignment(self, lead_id: UUID) -> None:
        await self._db.execute(
            update(Lead)
            .where(Lead.lead_id == lead_id)
            .values(assigned_to=None, assigned_at=None, assignment_method=None)
        )

    async def mark_converted(self, lead_id: UUID) -> None:
        """Move the lead to the terminal ``converted`` status."""
        await self._db.execute(
            update(Lead).where(Lead.lead_id == lead_id).values(status="converted")
        )
