from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.models.base import Base


class AutomationLeadState(Base):
    """Externalised trigger marker for one (automation rule, lead) pair.

    Holds the previous observation used for edge-triggered firing and the
    "last automated nudge" reference for time-based rules.  Updated with
    compare-and-set on ``version`` so concurrent ticks on different
    engine instances cannot both fire.
    """

    __tablename__ = "automation_lead_states"
    state_id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    rule_id = Column(
        UUID(as_uuid=True),
        ForeignKey("automation_rules.rule_id", ondelete="CASCADE"),
        nullable=False,
    )
    lead_id = Column(
        UUID(as_uuid=True),
        ForeignKey("leads.lead_id", ondelete="CASCADE"),
        nullable=False,
    )
    observed_score = Column(Integer)
    observed_status = Column(String(30))
    observed_activity_at = Column(DateTime(timezone=True))
    in_band = Column(Boolean, nullable=False, server_default=text("false"))
    nudged_for = Column(DateTime(timezone=True))
    version = Column(Integer, nullable=False, server_default=text("1"))
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("rule_id", "lead_id", name="uq_automation_lead_state"),
    )
