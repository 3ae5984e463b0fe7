from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.sql import func

from app.models.base import Base


class AutomationExecutionLog(Base):
    """Append-only record of one automation firing for one lead."""

    __tablename__ = "automation_execution_logs"
    log_id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    rule_id = Column(
        UUID(as_uuid=True),
        ForeignKey("automation_rules.rule_id", ondelete="RESTRICT"),
        nullable=False,
    )
    lead_id = Column(
        UUID(as_uuid=True),
        ForeignKey("leads.lead_id", ondelete="CASCADE"),
        nullable=False,
    )
    execution_result = Column(Text, nullable=False)
    execution_time_ms = Column(Integer)
    failed_actions = Column(JSONB)
    error_message = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "execution_result IN ('success', 'failure', 'skipped')",
            name="ck_automation_execution_result",
        ),
        Index("ix_automation_execution_logs_rule_created", "rule_id", "created_at"),
    )
