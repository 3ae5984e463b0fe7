from typing import List, Optional
from uuid import UUID

from sqlalchemy import select

from app.models.conversion_record import ConversionRecord
from app.models.student import Student
from app.repositories.base import BaseRepository


class ConversionRepository(BaseRepository):
    """Queries against ``students`` and ``conversion_records``.

    Both tables carry UNIQUE(lead_id); a concurrent second conversion
    surfaces as ``IntegrityError`` on flush, which the handover service
    translates into an idempotent "already converted" outcome.
    """

    async def get_record(self, lead_id: UUID) -> Optional[ConversionRecord]:
        result = await self._db.execute(
            select(ConversionRecord).where(ConversionRecord.lead_id == lead_id)
        )
        return result.scalar_one_or_none()

    async def get_student_by_lead(self, lead_id: UUID) -> Optional[Student]:
        result = await self._db.execute(
            select(Student).where(Student.lead_id == lead_id)
        )
        return result.scalar_one_or_none()

    async def get_student(self, student_id: UUID) -> Optional[Student]:
        result = await self._db.execute(
            select(Student).where(Student.student_id == student_id)
        )
        return result.scalar_one_or_none()

    async def create_student(self, **kwargs) -> Student:
        return await self._persist(Student(**kwargs), refresh=True)

    async def create_record(
        self, lead_id: UUID, student_id: UUID, method: str
    ) -> ConversionRecord:
        record = ConversionRecord(
            lead_id=lead_id, student_id=student_id, conversion_method=method
        )
        return await self._persist(record)

    async def find_orphan_students(self) -> List[Student]:
        """Students that have no matching conversion record."""
        has_record = (
            select(ConversionRecord.record_id)
            .where(ConversionRecord.lead_id == Student.lead_id)
            .correlate(Student)
            .exists()
        )
        result = await self._db.execute(
            select(Student).where(~has_record).order_by(Student.created_at)
        )
        return list(result.scalars().all())
