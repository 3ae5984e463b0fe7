from typing import List, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


class AdvisorSnapshot(BaseModel):
    """Point-in-time capacity view of one advisor.

    ``specializations`` is the advisor's own list when set, otherwise the
    team's; the repository resolves that before building the snapshot.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    advisor_id: UUID
    team_id: Optional[UUID] = None
    full_name: str = ""
    specializations: Tuple[str, ...] = ()
    current_assignments: int = Field(0, ge=0)
    max_daily_assignments: int = Field(0, ge=0)
    is_active: bool = True
    conversion_rate: float = 0.0  # percent, 0 to 100
    average_response_time_hours: float = 0.0

    @field_validator("specializations", mode="before")
    @classmethod
    def none_to_empty(cls, value):
        return () if value is None else value

    @field_validator("conversion_rate", "average_response_time_hours", mode="before")
    @classmethod
    def none_to_zero(cls, value):
        return 0.0 if value is None else float(value)

    @property
    def has_capacity(self) -> bool:
        return self.is_active and self.current_assignments < self.max_daily_assignments

    @property
    def load_ratio(self) -> float:
        """``current / max``; an advisor with zero capacity counts as full."""
        if self.max_daily_assignments <= 0:
            return float("inf")
        return self.current_assignments / self.max_daily_assignments

    @property
    def utilization(self) -> float:
        if self.max_daily_assignments <= 0:
            return 0.0
        return min(100.0, self.current_assignments / self.max_daily_assignments * 100)


class TeamCapacity(BaseModel):
    model_config = ConfigDict(frozen=True)

    team_id: UUID
    name: str
    region: Optional[str] = None
    specializations: Tuple[str, ...] = ()
    members: Tuple[AdvisorSnapshot, ...] = ()

    @computed_field
    @property
    def total_capacity(self) -> int:
        return sum(m.max_daily_assignments for m in self.members)

    @computed_field
    @property
    def current_load(self) -> int:
        return sum(m.current_assignments for m in self.members)

    @computed_field
    @property
    def utilization_rate(self) -> float:
        """Load as a percentage of capacity, clamped to ``[0, 100]``.

        A team with no capacity reports 0 (unknown) rather than dividing
        by zero.
        """
        total = self.total_capacity
        if total <= 0:
            return 0.0
        return max(0.0, min(100.0, self.current_load / total * 100))


class WorkloadRecommendation(BaseModel):
    type: str  # 'redistribute' | 'reduce_load'
    description: str
    impact: str
    advisor_id: Optional[UUID] = None


class WorkloadOptimization(BaseModel):
    recommendations: List[WorkloadRecommendation]
    balance_score: float


class AssignmentRecommendation(BaseModel):
    advisor_id: UUID
    advisor_name: str
    score: int
    reasoning: List[str]
    confidence: int
    workload_impact: str
    availability: str
    estimated_response_time: float
    specializations: List[str]
    current_load: int
    max_capacity: int
