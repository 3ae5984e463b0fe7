from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.models.base import Base


class ConversionRecord(Base):
    """One-to-one link from a converted lead to its student record.

    UNIQUE on ``lead_id`` makes the lead to student handover at-most-once.
    """

    __tablename__ = "conversion_records"
    record_id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    lead_id = Column(
        UUID(as_uuid=True),
        ForeignKey("leads.lead_id", ondelete="RESTRICT"),
        nullable=False,
    )
    student_id = Column(
        UUID(as_uuid=True),
        ForeignKey("students.student_id", ondelete="RESTRICT"),
        nullable=False,
    )
    conversion_method = Column(String(20), nullable=False)
    converted_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("lead_id", name="uq_conversion_record_lead"),
        UniqueConstraint("student_id", name="uq_conversion_record_student"),
        CheckConstraint(
            "conversion_method IN ('manual', 'bulk', 'automation')",
            name="ck_conversion_method",
        ),
    )
