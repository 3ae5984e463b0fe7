"""Lead snapshots passed into the routing, automation and scoring core."""

from datetime import datetime
from typing import Any, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.conditions import CONDITION_FIELDS


class LeadSnapshot(BaseModel):
    """Immutable view of a lead's current attribute values.

    Built from the ORM row with ``LeadSnapshot.model_validate(lead)`` at
    the service boundary; the pure core (rule evaluation, trigger
    decisions, qualification scoring) only ever sees snapshots.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    lead_id: UUID
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    country: Optional[str] = None
    source: Optional[str] = None
    status: str = "new"
    priority: str = "medium"
    lead_score: int = Field(0, ge=0, le=100)
    program_interest: Tuple[str, ...] = ()
    documents_submitted: Tuple[str, ...] = ()
    activity_count: int = Field(0, ge=0)
    last_activity_at: Optional[datetime] = None
    last_activity_type: Optional[str] = None
    qualification_stage: Optional[str] = None
    assigned_to: Optional[UUID] = None
    assigned_at: Optional[datetime] = None
    assignment_method: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_validator("program_interest", "documents_submitted", mode="before")
    @classmethod
    def none_to_empty(cls, value: Any) -> Any:
        return () if value is None else value

    @field_validator("lead_score", "activity_count", mode="before")
    @classmethod
    def none_to_zero(cls, value: Any) -> Any:
        return 0 if value is None else value

    def value_of(self, field: str) -> Any:
        """Return the attribute a routing condition *field* refers to."""
        return getattr(self, CONDITION_FIELDS[field])

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class LeadSnapshotInput(BaseModel):
    """Ad-hoc lead attributes for the routing preview endpoint."""

    lead_id: Optional[UUID] = None
    country: Optional[str] = None
    source: Optional[str] = None
    status: str = "new"
    priority: str = "medium"
    lead_score: int = Field(0, ge=0, le=100)
    program_interest: Tuple[str, ...] = ()
    activity_count: int = Field(0, ge=0)
    qualification_stage: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
