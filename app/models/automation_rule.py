from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.sql import func

from app.models.base import Base


class AutomationRule(Base):
    """Scheduled / event-driven rule that fires non-assignment actions.

    ``evaluation_count`` counts lead evaluations, ``execution_count``
    firings and ``success_count`` the firings whose every action
    dispatched successfully.  The success rate is measured against
    evaluations.
    """

    __tablename__ = "automation_rules"
    rule_id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    name = Column(String(200), nullable=False)
    description = Column(Text)
    trigger_type = Column(String(30), nullable=False)
    conditions = Column(JSONB, nullable=False, server_default=text("'{}'::jsonb"))
    actions = Column(JSONB, nullable=False, server_default=text("'[]'::jsonb"))
    is_active = Column(Boolean, nullable=False, server_default=text("true"))
    evaluation_count = Column(Integer, nullable=False, server_default=text("0"))
    execution_count = Column(Integer, nullable=False, server_default=text("0"))
    success_count = Column(Integer, nullable=False, server_default=text("0"))
    last_executed = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "trigger_type IN ('score_threshold', 'time_based', "
            "'activity_based', 'status_change')",
            name="ck_automation_trigger_type",
        ),
        CheckConstraint(
            "success_count <= execution_count", name="ck_automation_success_le_exec"
        ),
    )

    @property
    def success_rate(self) -> float:
        if not self.evaluation_count:
            return 0.0
        return round(self.success_count / self.evaluation_count * 100, 2)
