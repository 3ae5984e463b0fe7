import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.constants import STUDENT_NUMBER_PREFIX
from app.core.exceptions import (
    AlreadyConvertedError,
    LeadNotFoundError,
    PersistenceConflictError,
    QualificationNotMetError,
    RoutingEngineError,
)
from app.repositories.conversion_repository import ConversionRepository
from app.repositories.lead_repository import LeadRepository
from app.schemas.common import QualificationBand
from app.schemas.handover import (
    ConversionOutcome,
    ConversionResult,
    HandoverLead,
    HandoverQueue,
    QualificationResult,
    ReconciliationReport,
    StudentOut,
)
from app.schemas.lead import LeadSnapshot
from app.services.qualification_scorer import QualificationScorer

logger = logging.getLogger(__name__)


def _student_number() -> str:
    return f"{STUDENT_NUMBER_PREFIX}-{datetime.now(timezone.utc):%Y}-{uuid4().hex[:8].upper()}"


class HandoverService:
    """Qualification queue and lead to student conversion.

    Conversion is at-most-once per lead: Student and ConversionRecord are
    written in the same transaction as the lead's ``converted`` status,
    and both tables are UNIQUE on ``lead_id``.  Calling ``convert`` for a
    lead that is already converted returns the existing student.
    """

    def __init__(
        self,
        scorer: Optional[QualificationScorer] = None,
        session_factory: Optional[Callable[..., AsyncSession]] = None,
        max_retries: Optional[int] = None,
        concurrency: Optional[int] = None,
    ) -> None:
        self._scorer = scorer or QualificationScorer()
        self._session_factory = session_factory
        self._max_retries: int = (
            max_retries if max_retries is not None else settings.CONVERSION_MAX_RETRIES
        )
        self._concurrency: int = (
            concurrency if concurrency is not None else settings.CONVERSION_CONCURRENCY
        )

    # ------------------------------------------------------------------
    # Qualification
    # ------------------------------------------------------------------

    async def get_qualification(
        self, lead_id: UUID, lead_repo: LeadRepository
    ) -> QualificationResult:
        lead = await lead_repo.get_by_id(lead_id)
        if lead is None:
            raise LeadNotFoundError(f"Lead {lead_id} not found")
        return self._scorer.score(LeadSnapshot.model_validate(lead))

    async def get_handover_queue(self, lead_repo: LeadRepository) -> HandoverQueue:
        """Score every open lead, refresh its cached band and bucket it."""
        leads = await lead_repo.list_open()
        queue = HandoverQueue()
        for lead in leads:
            snapshot = LeadSnapshot.model_validate(lead)
            result = self._scorer.score(snapshot)
            if snapshot.qualification_stage != result.band.value:
                await lead_repo.set_qualification_stage(snapshot.lead_id, result.band.value)
            entry = HandoverLead(
                lead_id=snapshot.lead_id,
                name=snapshot.full_name,
                email=snapshot.email,
                status=snapshot.status,
                lead_score=snapshot.lead_score,
                program_interest=list(snapshot.program_interest),
                created_at=snapshot.created_at,
                qualification=result,
            )
            if result.band is QualificationBand.ready:
                queue.ready.append(entry)
            elif result.band is QualificationBand.almost_ready:
                queue.almost_ready.append(entry)
            else:
                queue.needs_work.append(entry)
        await lead_repo.commit()
        for bucket in (queue.ready, queue.almost_ready, queue.needs_work):
            bucket.sort(key=lambda e: -e.qualification.qualification_score)
        return queue

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    async def _existing_result(
        self,
        lead_id: UUID,
        lead_repo: LeadRepository,
        conversion_repo: ConversionRepository,
    ) -> Optional[ConversionResult]:
        """Resolve a lead that already has a student, repairing if needed."""
        record = await conversion_repo.get_record(lead_id)
        if record is not None:
            student = await conversion_repo.get_student(record.student_id)
            return ConversionResult(
                lead_id=lead_id,
                student=StudentOut.model_validate(student),
                already_converted=True,
            )
        student = await conversion_repo.get_student_by_lead(lead_id)
        if student is None:
            return None
        logger.warning(
            "Student %s for lead %s has no conversion record; repairing",
            student.student_id,
            lead_id,
        )
        await conversion_repo.create_record(lead_id, student.student_id, "manual")
        await lead_repo.mark_converted(lead_id)
        await conversion_repo.commit()
        return ConversionResult(
            lead_id=lead_id,
            student=StudentOut.model_validate(student),
            already_converted=True,
            repaired=True,
        )

    async def _convert_once(
        self,
        lead_id: UUID,
        method: str,
        lead_repo: LeadRepository,
        conversion_repo: ConversionRepository,
    ) -> ConversionResult:
        lead = await lead_repo.get_by_id(lead_id)
        if lead is None:
            raise LeadNotFoundError(f"Lead {lead_id} not found")

        existing = await self._existing_result(lead_id, lead_repo, conversion_repo)
        if existing is not None:
            return existing

        snapshot = LeadSnapshot.model_validate(lead)
        result = self._scorer.score(snapshot)
        if not result.is_qualified:
            raise QualificationNotMetError(
                f"Lead {lead_id} scores {result.qualification_score}; missing: "
                + ", ".join(result.missing_requirements)
            )

        try:
            student = await conversion_repo.create_student(
                lead_id=lead_id,
                student_number=_student_number(),
                first_name=snapshot.first_name,
                last_name=snapshot.last_name,
                email=snapshot.email,
                phone=snapshot.phone,
                program=snapshot.program_interest[0] if snapshot.program_interest else None,
                advisor_id=snapshot.assigned_to,
            )
            await conversion_repo.create_record(lead_id, student.student_id, method)
            await lead_repo.mark_converted(lead_id)
            await conversion_repo.commit()
        except IntegrityError as exc:
            raise AlreadyConvertedError(
                f"Lead {lead_id} was converted concurrently"
            ) from exc

        logger.info(
            "Lead %s converted to student %s (%s)",
            lead_id,
            student.student_number,
            method,
        )
        return ConversionResult(lead_id=lead_id, student=StudentOut.model_validate(student))

    async def convert(
        self,
        lead_id: UUID,
        method: str,
        lead_repo: LeadRepository,
        conversion_repo: ConversionRepository,
    ) -> ConversionResult:
        """Convert one lead; idempotent per lead.

        Raises ``LeadNotFoundError`` or ``QualificationNotMetError``.  A
        concurrent conversion of the same lead is retried and resolves to
        the student the other writer created.
        """
        for attempt in range(self._max_retries + 1):
            try:
                return await self._convert_once(
                    lead_id, method, lead_repo, conversion_repo
                )
            except AlreadyConvertedError:
                await conversion_repo.rollback()
                logger.info(
                    "Conversion race on lead %s (attempt %d); re-reading",
                    lead_id,
                    attempt + 1,
                )
        raise PersistenceConflictError(
            f"Could not resolve conversion of lead {lead_id} after "
            f"{self._max_retries + 1} attempt(s)"
        )

    async def convert_in_new_session(self, lead_id: UUID, method: str) -> ConversionResult:
        """Convert using a dedicated session from the session factory."""
        if self._session_factory is None:
            raise RuntimeError("HandoverService needs a session_factory for this call")
        async with self._session_factory() as session:
            return await self.convert(
                lead_id,
                method,
                LeadRepository(session),
                ConversionRepository(session),
            )

    async def reconcile(
        self, lead_repo: LeadRepository, conversion_repo: ConversionRepository
    ) -> ReconciliationReport:
        """Create missing conversion records for orphaned students."""
        report = ReconciliationReport()
        for student in await conversion_repo.find_orphan_students():
            result = await self._existing_result(student.lead_id, lead_repo, conversion_repo)
            if result is not None and result.repaired:
                report.repaired_lead_ids.append(student.lead_id)
        if report.repaired_lead_ids:
            logger.info("Reconciled %d orphaned student(s)", len(report.repaired_lead_ids))
        return report

    async def _conversion_candidates(self) -> List[UUID]:
        """Open leads that score Ready now or are still cached as Ready.

        Every open lead is scored here so a lead whose cached stage is
        missing or stale is not skipped.  Leads cached as Ready that no
        longer qualify stay in the batch and fail the re-check in
        ``convert`` with an itemized error.
        """
        async with self._session_factory() as session:
            leads = await LeadRepository(session).list_open()
            candidates = []
            for lead in leads:
                snapshot = LeadSnapshot.model_validate(lead)
                band = self._scorer.score(snapshot).band
                if (
                    band is QualificationBand.ready
                    or snapshot.qualification_stage == QualificationBand.ready.value
                ):
                    candidates.append(snapshot.lead_id)
        return sorted(candidates, key=str)

    async def process_automatic_conversions(
        self, stop_event: Optional[asyncio.Event] = None
    ) -> List[ConversionOutcome]:
        """Convert every Ready lead, each in its own transaction.

        Leads are processed by a bounded pool of workers.  A failure on
        one lead is reported in its outcome and never aborts the batch.
        Once *stop_event* is set no new lead is started; leads already
        in flight finish.
        """
        if self._session_factory is None:
            raise RuntimeError("HandoverService needs a session_factory for this call")
        candidates = await self._conversion_candidates()
        if not candidates:
            return []

        logger.info("Automatic conversion started for %d lead(s)", len(candidates))
        semaphore = asyncio.Semaphore(max(1, self._concurrency))

        async def worker(lead_id: UUID) -> Optional[ConversionOutcome]:
            async with semaphore:
                if stop_event is not None and stop_event.is_set():
                    return None
                try:
                    result = await self.convert_in_new_session(lead_id, "bulk")
                    return ConversionOutcome(
                        lead_id=lead_id,
                        success=True,
                        student_id=result.student.student_id,
                    )
                except RoutingEngineError as exc:
                    logger.warning("Conversion of lead %s failed: %s", lead_id, exc.detail)
                    return ConversionOutcome(lead_id=lead_id, success=False, error=exc.detail)
                except Exception as exc:
                    logger.error("Conversion of lead %s failed", lead_id, exc_info=True)
                    return ConversionOutcome(lead_id=lead_id, success=False, error=str(exc))

        results = await asyncio.gather(*(worker(lead_id) for lead_id in candidates))
        outcomes = [r for r in results if r is not None]
        logger.info(
            "Automatic conversion finished: %d succeeded, %d failed, %d not started",
            sum(1 for o in outcomes if o.success),
            sum(1 for o in outcomes if not o.success),
            len(candidates) - len(outcomes),
        )
        return outcomes
