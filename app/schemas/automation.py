"""Automation-rule definitions, per-lead trigger state and tick reports."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.common import AutomationTrigger


class AutomationRuleDefinition(BaseModel):
    """A validated automation rule, ready for the trigger engine."""

    model_config = ConfigDict(frozen=True)

    rule_id: UUID
    name: str
    trigger_type: AutomationTrigger
    conditions: Dict[str, Any] = Field(default_factory=dict)
    actions: List[str] = Field(default_factory=list)
    is_active: bool = True


class TriggerState(BaseModel):
    """Last observation of a lead recorded for one automation rule.

    ``version`` is ``None`` until the first observation is stored.  The
    engine writes a new state with compare-and-set on ``version`` so two
    overlapping ticks cannot both act on the same observation.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    observed_score: Optional[int] = None
    observed_status: Optional[str] = None
    observed_activity_at: Optional[datetime] = None
    in_band: bool = False
    nudged_for: Optional[datetime] = None
    version: Optional[int] = None


class TriggerDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    fire: bool
    next_state: TriggerState
    reason: str = ""


# ---------------------------------------------------------------------------
# Request / response schemas
# ---------------------------------------------------------------------------


class AutomationRuleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    trigger_type: AutomationTrigger
    conditions: Dict[str, Any] = Field(default_factory=dict)
    actions: List[str] = Field(..., min_length=1)
    is_active: bool = True


class AutomationRuleOut(BaseModel):
    rule_id: UUID
    name: str
    description: Optional[str] = None
    trigger_type: AutomationTrigger
    conditions: Dict[str, Any]
    actions: List[str]
    is_active: bool
    evaluation_count: int
    execution_count: int
    success_rate: float
    last_executed: Optional[datetime] = None


class RuleTickReport(BaseModel):
    rule_id: UUID
    state: str  # 'fired' | 'skipped'
    leads_evaluated: int = 0
    fired: int = 0
    fully_successful: int = 0
    failed_actions: int = 0


class TickReport(BaseModel):
    started_at: datetime
    rules: List[RuleTickReport] = Field(default_factory=list)
    cancelled: bool = False

    @property
    def total_fired(self) -> int:
        return sum(r.fired for r in self.rules)
