from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from app.api.deps import get_conversion_repo, get_handover_service, get_lead_repo
from app.core.rate_limit import BULK_CONVERSION_LIMIT, limiter
from app.repositories.conversion_repository import ConversionRepository
from app.repositories.lead_repository import LeadRepository
from app.schemas.handover import (
    BulkConversionResponse,
    ConversionResult,
    HandoverQueue,
    QualificationResult,
    ReconciliationReport,
)
from app.services.handover_service import HandoverService

router = APIRouter(prefix="/handover", tags=["Handover"])


@router.get("/queue", response_model=HandoverQueue)
async def handover_queue(
    service: HandoverService = Depends(get_handover_service),
    lead_repo: LeadRepository = Depends(get_lead_repo),
) -> HandoverQueue:
    """Open leads bucketed into ready / almost ready / needs work."""
    return await service.get_handover_queue(lead_repo)


@router.get("/leads/{lead_id}/qualification", response_model=QualificationResult)
async def lead_qualification(
    lead_id: UUID,
    service: HandoverService = Depends(get_handover_service),
    lead_repo: LeadRepository = Depends(get_lead_repo),
) -> QualificationResult:
    return await service.get_qualification(lead_id, lead_repo)


@router.post("/leads/{lead_id}/convert", response_model=ConversionResult)
async def convert_lead(
    lead_id: UUID,
    method: str = Query("manual", pattern="^(manual|bulk|automation)$"),
    service: HandoverService = Depends(get_handover_service),
    lead_repo: LeadRepository = Depends(get_lead_repo),
    conversion_repo: ConversionRepository = Depends(get_conversion_repo),
) -> ConversionResult:
    """Convert a Ready lead into a student.

    Repeating the call returns the same student with
    ``already_converted`` set.
    """
    return await service.convert(lead_id, method, lead_repo, conversion_repo)


@router.post("/convert-ready", response_model=BulkConversionResponse)
@limiter.limit(BULK_CONVERSION_LIMIT)
async def convert_ready_leads(
    request: Request,
    service: HandoverService = Depends(get_handover_service),
) -> BulkConversionResponse:
    """Convert every lead currently cached as Ready.

    Rate-limited to 5 requests/minute per IP.  Safe to repeat: leads
    converted by an earlier run are no longer candidates.
    """
    results = await service.process_automatic_conversions()
    succeeded = sum(1 for r in results if r.success)
    return BulkConversionResponse(
        total=len(results),
        succeeded=succeeded,
        failed=len(results) - succeeded,
        results=results,
    )


@router.post("/reconcile", response_model=ReconciliationReport)
async def reconcile_conversions(
    service: HandoverService = Depends(get_handover_service),
    lead_repo: LeadRepository = Depends(get_lead_repo),
    conversion_repo: ConversionRepository = Depends(get_conversion_repo),
) -> ReconciliationReport:
    return await service.reconcile(lead_repo, conversion_repo)
