from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.models.base import Base


class RuleExecutionLog(Base):
    """Append-only audit row: one terminal outcome per routing attempt.

    Rows are inserted once and never updated; rule statistics
    (``match_count``, ``success_rate``) are aggregated from here.
    """

    __tablename__ = "rule_execution_logs"
    log_id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    rule_id = Column(
        UUID(as_uuid=True),
        ForeignKey("lead_routing_rules.rule_id", ondelete="RESTRICT"),
        nullable=False,
    )
    lead_id = Column(
        UUID(as_uuid=True),
        ForeignKey("leads.lead_id", ondelete="CASCADE"),
        nullable=False,
    )
    execution_result = Column(Text, nullable=False)
    execution_time_ms = Column(Integer)
    assigned_to = Column(UUID(as_uuid=True))
    error_message = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "execution_result IN ('success', 'failure', 'skipped')",
            name="ck_rule_execution_result",
        ),
        Index("ix_rule_execution_logs_rule_created", "rule_id", "created_at"),
    )
