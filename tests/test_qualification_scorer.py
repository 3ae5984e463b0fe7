"""Tests for rubric-based qualification scoring."""

import pytest

from app.core.exceptions import InvalidRuleConfigError
from app.schemas.common import QualificationBand
from app.schemas.lead import LeadSnapshot
from app.services.qualification_scorer import QualificationScorer
from tests.fakes import make_lead, make_ready_lead_row


def _ready_lead(**overrides) -> LeadSnapshot:
    return LeadSnapshot.model_validate(make_ready_lead_row(**overrides))


class TestQualificationScorer:
    """Deterministic, monotonic readiness scoring."""

    def setup_method(self):
        self.scorer = QualificationScorer(ready_threshold=80, almost_ready_threshold=60)

    def test_complete_lead_scores_100(self):
        result = self.scorer.score(_ready_lead())
        assert result.qualification_score == 100
        assert result.is_qualified is True
        assert result.band is QualificationBand.ready
        assert result.missing_requirements == []
        assert result.recommendations == []

    def test_scoring_is_deterministic(self):
        lead = make_lead(lead_score=55, documents_submitted=["passport"])
        results = {self.scorer.score(lead).model_dump_json() for _ in range(5)}
        assert len(results) == 1

    def test_completing_an_item_never_lowers_the_score(self):
        lead = make_lead(documents_submitted=[])
        before = self.scorer.score(lead).qualification_score
        after = self.scorer.score(
            lead.model_copy(update={"documents_submitted": ("transcript",)})
        ).qualification_score
        assert after == before + 10

    def test_missing_documents_drop_a_band(self):
        result = self.scorer.score(_ready_lead(documents_submitted=["transcript"]))
        assert result.qualification_score == 80
        assert result.band is QualificationBand.ready

        result = self.scorer.score(_ready_lead(documents_submitted=[]))
        assert result.qualification_score == 70
        assert result.band is QualificationBand.almost_ready
        assert not result.is_qualified

    def test_needs_work_band(self):
        result = self.scorer.score(make_lead(email=None, phone=None, program_interest=[]))
        assert result.band is QualificationBand.needs_work

    def test_recommendations_closest_first(self):
        # Lead score is 45/50 and engagement 2/3; both partially met
        lead = _ready_lead(activity_count=2, lead_score=45, documents_submitted=["passport", "ielts"])
        result = self.scorer.score(lead)
        assert result.missing_requirements[0] == "Lead score of 50 or more"
        assert result.missing_requirements[-1] == "Academic transcript submitted"
        assert len(result.recommendations) == len(result.missing_requirements)

    def test_thresholds_are_configurable(self):
        strict = QualificationScorer(ready_threshold=100, almost_ready_threshold=90)
        lead = _ready_lead(documents_submitted=["transcript", "passport"])
        assert strict.score(lead).band is QualificationBand.almost_ready


class TestRubricValidation:
    def test_weights_must_sum_to_100(self):
        rubric = [
            {
                "key": "contact",
                "label": "Contact",
                "weight": 50,
                "condition": {"type": "fields_present", "fields": ["email"]},
                "recommendation": "Get email",
            }
        ]
        with pytest.raises(InvalidRuleConfigError):
            QualificationScorer(rubric=rubric)

    def test_unknown_condition_type(self):
        rubric = [
            {
                "key": "vibes",
                "label": "Vibes",
                "weight": 100,
                "condition": {"type": "astrology"},
                "recommendation": "Consult the stars",
            }
        ]
        with pytest.raises(InvalidRuleConfigError):
            QualificationScorer(rubric=rubric)
