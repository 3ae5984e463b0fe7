"""Routing-rule definitions, assignment configuration and routing results."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from typing_extensions import Self

from app.core.exceptions import InvalidRuleConfigError
from app.schemas.common import AssignmentPolicy, ExecutionResult
from app.schemas.conditions import Condition, parse_conditions


class AssignmentConfig(BaseModel):
    """Assignment action attached to a routing rule.

    ``method`` selects the policy.  ``direct`` needs ``advisor_id``; the
    pool policies draw from ``advisor_ids`` when given, else from the
    members of ``team_id``, else from every active advisor.  Extra keys
    saved by the rule wizard (``workload_balance`` and friends) are
    ignored.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    method: AssignmentPolicy = Field(
        ..., validation_alias=AliasChoices("method", "policy")
    )
    advisor_id: Optional[UUID] = None
    team_id: Optional[UUID] = None
    advisor_ids: List[UUID] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_target(self) -> Self:
        if self.method is AssignmentPolicy.direct and self.advisor_id is None:
            raise ValueError("direct assignment requires advisor_id")
        return self

    @property
    def pool_key(self) -> str:
        """Stable key identifying the pool for round-robin cursors."""
        if self.advisor_ids:
            return "advisors:" + ",".join(sorted(str(a) for a in self.advisor_ids))
        if self.team_id is not None:
            return f"team:{self.team_id}"
        return "all"


class RoutingRuleDefinition(BaseModel):
    """A validated, ready-to-evaluate routing rule."""

    model_config = ConfigDict(frozen=True)

    rule_id: UUID
    name: str
    priority: int = 0
    is_active: bool = True
    condition: Optional[Condition] = None
    assignment_config: AssignmentConfig

    @property
    def is_catch_all(self) -> bool:
        return self.condition is None


class MatchResult(BaseModel):
    """The rule that won evaluation and the leaf predicates it matched on."""

    model_config = ConfigDict(frozen=True)

    rule: RoutingRuleDefinition
    matched_conditions: List[str] = Field(default_factory=list)


class Assignment(BaseModel):
    model_config = ConfigDict(frozen=True)

    advisor_id: UUID
    lead_id: UUID
    rule_id: Optional[UUID] = None
    method: AssignmentPolicy
    assigned_at: datetime


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


def _check_conditions(value: Dict[str, Any]) -> None:
    try:
        parse_conditions(value)
    except InvalidRuleConfigError as exc:
        raise ValueError(exc.detail) from exc


class RoutingRuleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    priority: int = 5
    is_active: bool = True
    conditions: Dict[str, Any] = Field(default_factory=dict)
    assignment_config: AssignmentConfig

    @field_validator("conditions")
    @classmethod
    def validate_conditions(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        _check_conditions(value)
        return value


class RoutingRuleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    priority: Optional[int] = None
    is_active: Optional[bool] = None
    conditions: Optional[Dict[str, Any]] = None
    assignment_config: Optional[AssignmentConfig] = None

    @field_validator("conditions")
    @classmethod
    def validate_conditions(
        cls, value: Optional[Dict[str, Any]]
    ) -> Optional[Dict[str, Any]]:
        if value is not None:
            _check_conditions(value)
        return value


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class RoutingRuleOut(BaseModel):
    rule_id: UUID
    name: str
    description: Optional[str] = None
    priority: int
    is_active: bool
    conditions: Dict[str, Any]
    assignment_config: Dict[str, Any]
    match_count: int = 0
    success_rate: float = 0.0
    average_execution_time_ms: float = 0.0


class RouteLeadResponse(BaseModel):
    lead_id: UUID
    routed: bool
    result: Optional[ExecutionResult] = None
    rule_id: Optional[UUID] = None
    rule_name: Optional[str] = None
    matched_conditions: List[str] = Field(default_factory=list)
    assignment: Optional[Assignment] = None
    needs_manual_routing: bool = False
    reason: Optional[str] = None


class RulePreviewMatch(BaseModel):
    rule_id: UUID
    rule_name: str
    priority: int
    matched_conditions: List[str]


class RoutingPreviewResponse(BaseModel):
    winner: Optional[RulePreviewMatch] = None
    matches: List[RulePreviewMatch] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
