from sqlalchemy import (
    ARRAY,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.models.base import Base


class Lead(Base):
    """Prospective applicant captured by the admissions CRM.

    The routing engine reads leads and annotates them (assignment stamp,
    cached qualification stage, conversion status) but does not own the
    rest of their lifecycle.  ``lead_score`` is the 0 to 100 behavioural
    score maintained by the CRM; readiness for handover is computed
    separately by the qualification scorer.
    """

    __tablename__ = "leads"
    lead_id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    first_name = Column(String(100))
    last_name = Column(String(100))
    email = Column(String(255))
    phone = Column(String(30))
    country = Column(String(100))
    source = Column(String(30), nullable=False, server_default="web")
    status = Column(String(30), nullable=False, server_default="new")
    priority = Column(String(20), nullable=False, server_default="medium")
    lead_score = Column(Integer, nullable=False, server_default=text("0"))
    program_interest = Column(ARRAY(String))
    documents_submitted = Column(ARRAY(String))
    activity_count = Column(Integer, nullable=False, server_default=text("0"))
    last_activity_at = Column(DateTime(timezone=True))
    last_activity_type = Column(String(50))
    qualification_stage = Column(String(30))
    assigned_to = Column(
        UUID(as_uuid=True), ForeignKey("advisors.advisor_id", ondelete="SET NULL")
    )
    assigned_at = Column(DateTime(timezone=True))
    assignment_method = Column(String(30))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("lead_score BETWEEN 0 AND 100", name="ck_lead_score_range"),
        CheckConstraint("activity_count >= 0", name="ck_lead_activity_count_nonneg"),
        CheckConstraint(
            "status IN ('new', 'contacted', 'qualified', 'nurturing', "
            "'converted', 'lost', 'unqualified')",
            name="ck_lead_status",
        ),
        CheckConstraint(
            "priority IN ('low', 'medium', 'high', 'urgent')",
            name="ck_lead_priority",
        ),
        Index("ix_leads_status", "status"),
        Index("ix_leads_qualification_stage", "qualification_stage"),
        Index("ix_leads_assigned_to", "assigned_to"),
    )
