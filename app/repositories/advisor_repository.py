from typing import List, Optional
from uuid import UUID

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import selectinload

from app.models.advisor import Advisor
from app.models.team import Team
from app.repositories.base import BaseRepository
from app.schemas.capacity import AdvisorSnapshot
from app.schemas.routing import AssignmentConfig


def to_snapshot(advisor: Advisor) -> AdvisorSnapshot:
    """Build an immutable snapshot, inheriting team specialisations if unset."""
    specializations = advisor.specializations
    if not specializations and advisor.team is not None:
        specializations = advisor.team.specializations
    return AdvisorSnapshot(
        advisor_id=advisor.advisor_id,
        team_id=advisor.team_id,
        full_name=advisor.full_name or "",
        specializations=tuple(specializations or ()),
        current_assignments=advisor.current_assignments or 0,
        max_daily_assignments=advisor.max_daily_assignments or 0,
        is_active=bool(advisor.is_active),
        conversion_rate=advisor.conversion_rate,
        average_response_time_hours=advisor.average_response_time_hours,
    )


class AdvisorRepository(BaseRepository):
    """Encapsulates every SQL query that touches ``advisors`` and ``teams``.

    ``try_reserve`` is the only write path that increases
    ``current_assignments``; it is a single conditional UPDATE so two
    concurrent reservations can never push an advisor past capacity.
    """

    async def get_by_id(self, advisor_id: UUID) -> Optional[Advisor]:
        """Return a single advisor by primary key, or ``None``."""
        result = await self._db.execute(
            select(Advisor)
            .where(Advisor.advisor_id == advisor_id)
            .options(selectinload(Advisor.team))
        )
        return result.scalar_one_or_none()

    async def get_snapshot(self, advisor_id: UUID) -> Optional[AdvisorSnapshot]:
        advisor = await self.get_by_id(advisor_id)
        return to_snapshot(advisor) if advisor is not None else None

    async def list_pool(self, config: AssignmentConfig) -> List[AdvisorSnapshot]:
        """Return fresh snapshots of the pool a rule draws from.

        Pool precedence: explicit ``advisor_ids``, then the members of
        ``team_id``, then every advisor.  Ordered by ``advisor_id`` so
        round-robin rotation is stable across instances.
        """
        query = select(Advisor).options(selectinload(Advisor.team))
        if config.advisor_ids:
            query = query.where(Advisor.advisor_id.in_(config.advisor_ids))
        elif config.team_id is not None:
            query = query.where(Advisor.team_id == config.team_id)
        result = await self._db.execute(query.order_by(Advisor.advisor_id))
        return [to_snapshot(a) for a in result.scalars().all()]

    async def try_reserve(self, advisor_id: UUID) -> Optional[int]:
        """Atomically take one unit of capacity from *advisor_id*.

        Returns the new ``current_assignments`` when the reservation
        succeeded, ``None`` when the advisor is inactive or already full.
        """
        result = await self._db.execute(
            update(Advisor)
            .where(
                Advisor.advisor_id == advisor_id,
                Advisor.is_active.is_(True),
                Advisor.current_assignments < Advisor.max_daily_assignments,
            )
            .values(current_assignments=Advisor.current_assignments + 1)
            .returning(Advisor.current_assignments)
        )
        return result.scalar_one_or_none()

    async def release(self, advisor_id: UUID) -> None:
        """Give one unit of capacity back; never goes below zero."""
        await self._db.execute(
            update(Advisor)
            .where(Advisor.advisor_id == advisor_id)
            .values(
                current_assignments=case(
                    (Advisor.current_assignments > 0, Advisor.current_assignments - 1),
                    else_=0,
                )
            )
        )

    async def reset_daily_assignments(self) -> int:
        """End-of-day reset; returns the number of advisors touched."""
        result = await self._db.execute(
            update(Advisor)
            .where(Advisor.current_assignments > 0)
            .values(current_assignments=0, updated_at=func.now())
        )
        return result.rowcount or 0

    async def list_teams_with_members(self) -> List[Team]:
        """Return every team with its members eagerly loaded."""
        result = await self._db.execute(
            select(Team)
            .options(selectinload(Team.members).selectinload(Advisor.team))
            .order_by(Team.name)
        )
        return list(result.scalars().all())

    async def list_all(self) -> List[AdvisorSnapshot]:
        result = await self._db.execute(
            select(Advisor)
            .options(selectinload(Advisor.team))
            .order_by(Advisor.advisor_id)
        )
        return [to_snapshot(a) for a in result.scalars().all()]
