from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.sql import func

from app.models.base import Base


class RoutingRule(Base):
    """Admin-authored routing rule.

    ``conditions`` holds the predicate tree and ``assignment_config`` the
    policy; both are validated when the rule is loaded.  Rules referenced
    by execution logs are never deleted; deactivate with ``is_active``.
    Match counts and success rates are derived from
    ``rule_execution_logs`` and not stored here.
    """

    __tablename__ = "lead_routing_rules"
    rule_id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    name = Column(String(200), nullable=False)
    description = Column(Text)
    priority = Column(Integer, nullable=False, server_default=text("0"))
    is_active = Column(Boolean, nullable=False, server_default=text("true"))
    conditions = Column(JSONB, nullable=False, server_default=text("'{}'::jsonb"))
    assignment_config = Column(JSONB, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_routing_rules_active_priority", "is_active", "priority"),
    )
