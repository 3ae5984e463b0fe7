from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field

from app.schemas.common import QualificationBand


class QualificationResult(BaseModel):
    """Derived readiness of a lead; recomputed on demand, never stored."""

    model_config = ConfigDict(frozen=True)

    is_qualified: bool
    qualification_score: int = Field(..., ge=0, le=100)
    band: QualificationBand
    missing_requirements: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class StudentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    student_id: UUID
    lead_id: UUID
    student_number: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    program: Optional[str] = None
    created_at: Optional[datetime] = None


class ConversionResult(BaseModel):
    lead_id: UUID
    student: StudentOut
    already_converted: bool = False
    repaired: bool = False


class ConversionOutcome(BaseModel):
    """One line of a bulk-conversion report."""

    lead_id: UUID
    success: bool
    student_id: Optional[UUID] = None
    error: Optional[str] = None


class BulkConversionResponse(BaseModel):
    total: int
    succeeded: int
    failed: int
    results: List[ConversionOutcome]


class HandoverLead(BaseModel):
    lead_id: UUID
    name: str
    email: Optional[str] = None
    status: str
    lead_score: int
    program_interest: List[str]
    created_at: Optional[datetime] = None
    qualification: QualificationResult


class HandoverQueue(BaseModel):
    ready: List[HandoverLead] = Field(default_factory=list)
    almost_ready: List[HandoverLead] = Field(default_factory=list)
    needs_work: List[HandoverLead] = Field(default_factory=list)

    @computed_field
    @property
    def total(self) -> int:
        return len(self.ready) + len(self.almost_ready) + len(self.needs_work)


class ReconciliationReport(BaseModel):
    repaired_lead_ids: List[UUID] = Field(default_factory=list)
