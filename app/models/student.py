from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.models.base import Base


class Student(Base):
    """Student record created when a Ready lead is handed over.

    ``lead_id`` is UNIQUE so at most one student can ever be derived
    from a lead, even if the conversion record is missing.
    """

    __tablename__ = "students"
    student_id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    lead_id = Column(
        UUID(as_uuid=True),
        ForeignKey("leads.lead_id", ondelete="RESTRICT"),
        nullable=False,
    )
    student_number = Column(String(40), nullable=False, unique=True)
    first_name = Column(String(100))
    last_name = Column(String(100))
    email = Column(String(255))
    phone = Column(String(30))
    program = Column(String(200))
    advisor_id = Column(UUID(as_uuid=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (UniqueConstraint("lead_id", name="uq_student_lead"),)
