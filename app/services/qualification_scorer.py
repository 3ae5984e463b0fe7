import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from app.core.config import settings
from app.core.default_qualification_rubric import DEFAULT_QUALIFICATION_RUBRIC
from app.core.exceptions import InvalidRuleConfigError
from app.schemas.common import QualificationBand
from app.schemas.handover import QualificationResult
from app.schemas.lead import LeadSnapshot

logger = logging.getLogger(__name__)

_CONDITION_TYPES = {"fields_present", "program", "document", "min_value", "status_in"}


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


class QualificationScorer:
    """Score a lead's readiness for handover against a weighted rubric.

    Scoring is a pure function of the snapshot: no clock, no I/O.  Each
    rubric item is satisfied or not; satisfied items contribute their
    full weight.  Unsatisfied items become ``missing_requirements`` and
    their advice is returned as ``recommendations``, closest to being
    met first.
    """

    def __init__(
        self,
        rubric: Optional[Sequence[Dict[str, Any]]] = None,
        ready_threshold: Optional[int] = None,
        almost_ready_threshold: Optional[int] = None,
    ) -> None:
        self._rubric = list(rubric if rubric is not None else DEFAULT_QUALIFICATION_RUBRIC)
        self._ready = (
            ready_threshold
            if ready_threshold is not None
            else settings.QUALIFICATION_READY_THRESHOLD
        )
        self._almost_ready = (
            almost_ready_threshold
            if almost_ready_threshold is not None
            else settings.QUALIFICATION_ALMOST_READY_THRESHOLD
        )
        self._validate()

    def _validate(self) -> None:
        total = 0
        for item in self._rubric:
            ctype = item.get("condition", {}).get("type")
            if ctype not in _CONDITION_TYPES:
                raise InvalidRuleConfigError(
                    f"Rubric item '{item.get('key')}' has unknown condition type '{ctype}'"
                )
            if item.get("weight", 0) < 0:
                raise InvalidRuleConfigError(
                    f"Rubric item '{item.get('key')}' has a negative weight"
                )
            total += item.get("weight", 0)
        if total != 100:
            raise InvalidRuleConfigError(f"Rubric weights sum to {total}, expected 100")

    @staticmethod
    def _progress(condition: Dict[str, Any], lead: LeadSnapshot) -> float:
        """Fraction (0-1) of the way toward satisfying *condition*."""
        ctype = condition["type"]
        if ctype == "fields_present":
            fields = condition["fields"]
            done = sum(1 for f in fields if _present(getattr(lead, f, None)))
            return done / len(fields) if fields else 1.0
        if ctype == "program":
            return 1.0 if any(_present(p) for p in lead.program_interest) else 0.0
        if ctype == "document":
            aliases = {a.lower() for a in condition["aliases"]}
            submitted = {d.strip().lower() for d in lead.documents_submitted}
            return 1.0 if aliases & submitted else 0.0
        if ctype == "min_value":
            threshold = condition["threshold"]
            value = getattr(lead, condition["field"], 0) or 0
            if threshold <= 0:
                return 1.0
            return min(1.0, max(0.0, value / threshold))
        if ctype == "status_in":
            return 1.0 if lead.status in condition["statuses"] else 0.0
        return 0.0

    def band_for(self, score: int) -> QualificationBand:
        if score >= self._ready:
            return QualificationBand.ready
        if score >= self._almost_ready:
            return QualificationBand.almost_ready
        return QualificationBand.needs_work

    def score(self, lead: LeadSnapshot) -> QualificationResult:
        total = 0
        missing: List[Tuple[float, int, int, Dict[str, Any]]] = []
        for index, item in enumerate(self._rubric):
            progress = self._progress(item["condition"], lead)
            if progress >= 1.0:
                total += item["weight"]
            else:
                missing.append((progress, item["weight"], index, item))

        # Closest to done first, then heaviest, then rubric order
        missing.sort(key=lambda m: (-m[0], -m[1], m[2]))
        score = max(0, min(100, total))
        return QualificationResult(
            is_qualified=score >= self._ready,
            qualification_score=score,
            band=self.band_for(score),
            missing_requirements=[m[3]["label"] for m in missing],
            recommendations=[m[3]["recommendation"] for m in missing],
        )
