import logging
from typing import List, Optional, Sequence
from uuid import UUID

import httpx
from typing_extensions import Protocol

from app.core.config import settings
from app.core.exceptions import CollaboratorUnavailableError
from app.schemas.capacity import AdvisorSnapshot, AssignmentRecommendation
from app.schemas.lead import LeadSnapshot

logger = logging.getLogger(__name__)

# Score weights (max points per factor)
_WORKLOAD_POINTS = 30
_PERFORMANCE_POINTS = 25
_SPECIALIZATION_POINTS = 25
_RESPONSE_POINTS = 20
# Response times at or beyond a day earn nothing
_RESPONSE_HORIZON_HOURS = 24.0


def _specialization_matches(
    specializations: Sequence[str], programs: Sequence[str]
) -> List[str]:
    """Specialisations that overlap any program (substring, case-insensitive)."""
    matched = []
    for specialization in specializations:
        s = specialization.lower()
        if any(s in p.lower() or p.lower() in s for p in programs):
            matched.append(specialization)
    return matched


def score_advisor(
    advisor: AdvisorSnapshot, lead: LeadSnapshot
) -> AssignmentRecommendation:
    """Weighted fit of *advisor* for *lead* on a 0-100 scale.

    Factors: spare capacity (30), conversion rate (25), specialisation
    overlap with the lead's program interest (25) and average response
    time (20).  ``confidence`` starts at 100 and is reduced for each
    weak factor.
    """
    score = 0.0
    reasoning: List[str] = []
    confidence = 100

    utilization = advisor.utilization
    score += max(0.0, _WORKLOAD_POINTS - utilization / 100 * _WORKLOAD_POINTS)
    if utilization < 50:
        reasoning.append(f"Low workload ({utilization:.0f}% utilization)")
    elif utilization > 80:
        reasoning.append(f"High workload ({utilization:.0f}% utilization)")
        confidence -= 20

    rate = max(0.0, min(100.0, advisor.conversion_rate))
    score += rate / 100 * _PERFORMANCE_POINTS
    if rate > 80:
        reasoning.append(f"High conversion rate ({rate:.0f}%)")
    elif rate < 30:
        reasoning.append(f"Lower conversion rate ({rate:.0f}%)")
        confidence -= 15

    programs = list(lead.program_interest)
    if programs:
        matched = _specialization_matches(advisor.specializations, programs)
        score += min(1.0, len(matched) / len(programs)) * _SPECIALIZATION_POINTS
        if matched:
            reasoning.append("Specialization match: " + ", ".join(matched))
        else:
            reasoning.append("No direct specialization match")
            confidence -= 10

    response = advisor.average_response_time_hours
    score += max(
        0.0, _RESPONSE_POINTS - response / _RESPONSE_HORIZON_HOURS * _RESPONSE_POINTS
    )
    if response < 2:
        reasoning.append(f"Fast response time ({response:.1f} hours)")
    elif response > 8:
        reasoning.append(f"Slower response time ({response:.1f} hours)")
        confidence -= 10

    if utilization < 60:
        impact = "low"
    elif utilization < 80:
        impact = "medium"
    else:
        impact = "high"

    if not advisor.has_capacity:
        availability = "unavailable"
    elif utilization < 70:
        availability = "available"
    elif utilization < 90:
        availability = "busy"
    else:
        availability = "unavailable"

    return AssignmentRecommendation(
        advisor_id=advisor.advisor_id,
        advisor_name=advisor.full_name,
        score=round(score),
        reasoning=reasoning,
        confidence=max(0, confidence),
        workload_impact=impact,
        availability=availability,
        estimated_response_time=response,
        specializations=list(advisor.specializations),
        current_load=advisor.current_assignments,
        max_capacity=advisor.max_daily_assignments,
    )


class AdvisorRanker(Protocol):
    """Anything that can order a pool of advisors for a lead."""

    async def rank(
        self, lead: LeadSnapshot, pool: Sequence[AdvisorSnapshot]
    ) -> List[UUID]:
        ...


class RecommendationRanker:
    """Local ranking by :func:`score_advisor`."""

    def recommend(
        self,
        lead: LeadSnapshot,
        pool: Sequence[AdvisorSnapshot],
        limit: Optional[int] = None,
        minimum_score: int = 0,
    ) -> List[AssignmentRecommendation]:
        scored = [score_advisor(a, lead) for a in pool if a.is_active]
        scored = [r for r in scored if r.score >= minimum_score]
        scored.sort(key=lambda r: (-r.score, str(r.advisor_id)))
        return scored[:limit] if limit is not None else scored

    async def rank(
        self, lead: LeadSnapshot, pool: Sequence[AdvisorSnapshot]
    ) -> List[UUID]:
        return [r.advisor_id for r in self.recommend(lead, pool)]


class HttpAdvisorRanker:
    """Ranks advisors through the external AI ranking collaborator.

    The collaborator receives the lead and the candidate pool and
    answers ``{"advisor_ids": [...]}`` best first.  Any transport error,
    non-2xx status or malformed answer falls back to the local ranker so
    ``ai_based`` routing keeps working when the collaborator is down.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        fallback: Optional[AdvisorRanker] = None,
    ) -> None:
        self._url: str = url if url is not None else settings.AI_RANKING_URL
        self._timeout: float = (
            timeout if timeout is not None else settings.COLLABORATOR_TIMEOUT_SECONDS
        )
        self._fallback: AdvisorRanker = fallback or RecommendationRanker()

    async def _fetch(
        self, lead: LeadSnapshot, pool: Sequence[AdvisorSnapshot]
    ) -> List[UUID]:
        payload = {
            "lead": lead.model_dump(mode="json"),
            "advisors": [a.model_dump(mode="json") for a in pool],
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self._url, json=payload)
                response.raise_for_status()
                body = response.json()
        except httpx.TimeoutException:
            logger.error("AI ranking service timed out: %s", self._url)
            raise CollaboratorUnavailableError("AI ranking service timed out")
        except httpx.HTTPStatusError as exc:
            logger.error(
                "AI ranking service returned %s: %s",
                exc.response.status_code,
                self._url,
            )
            raise CollaboratorUnavailableError(
                f"AI ranking service returned {exc.response.status_code}"
            )
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("AI ranking service unreachable: %s (%s)", self._url, exc)
            raise CollaboratorUnavailableError("AI ranking service unavailable")

        known = {str(a.advisor_id): a.advisor_id for a in pool}
        ids = body.get("advisor_ids") if isinstance(body, dict) else None
        if not isinstance(ids, list):
            raise CollaboratorUnavailableError("AI ranking response missing advisor_ids")
        # Ignore advisors the collaborator invented or repeated
        ranked: List[UUID] = []
        for raw in ids:
            advisor_id = known.get(str(raw))
            if advisor_id is not None and advisor_id not in ranked:
                ranked.append(advisor_id)
        return ranked

    async def rank(
        self, lead: LeadSnapshot, pool: Sequence[AdvisorSnapshot]
    ) -> List[UUID]:
        if not self._url:
            return await self._fallback.rank(lead, pool)
        try:
            return await self._fetch(lead, pool)
        except CollaboratorUnavailableError:
            logger.warning("Falling back to local advisor ranking for lead %s", lead.lead_id)
            return await self._fallback.rank(lead, pool)
