from sqlalchemy import (
    ARRAY,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.models.base import Base


class Advisor(Base):
    """Admissions advisor with a daily assignment capacity.

    ``current_assignments`` is only changed by the assignment executor
    (atomic compare-and-increment against ``max_daily_assignments``) and
    by the end-of-day reset.  A CHECK constraint keeps it non-negative.
    """

    __tablename__ = "advisors"
    advisor_id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    team_id = Column(
        UUID(as_uuid=True), ForeignKey("teams.team_id", ondelete="SET NULL")
    )
    full_name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True)
    specializations = Column(ARRAY(String))
    current_assignments = Column(Integer, nullable=False, server_default=text("0"))
    max_daily_assignments = Column(Integer, nullable=False, server_default=text("10"))
    is_active = Column(Boolean, nullable=False, server_default=text("true"))
    conversion_rate = Column(Numeric(5, 2))
    average_response_time_hours = Column(Numeric(8, 2))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    team = relationship("Team", back_populates="members")

    __table_args__ = (
        CheckConstraint(
            "current_assignments >= 0", name="ck_advisor_assignments_nonneg"
        ),
        CheckConstraint(
            "max_daily_assignments >= 0", name="ck_advisor_capacity_nonneg"
        ),
    )
