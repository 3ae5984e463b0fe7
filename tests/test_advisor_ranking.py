"""Tests for advisor scoring and the AI ranking collaborator client."""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID

import httpx
import pytest

from app.services.advisor_ranking import (
    HttpAdvisorRanker,
    RecommendationRanker,
    score_advisor,
)
from tests.fakes import make_advisor, make_lead

A1 = UUID("00000000-0000-0000-0000-000000000001")
A2 = UUID("00000000-0000-0000-0000-000000000002")


def _mock_http_client(response=None, error=None) -> MagicMock:
    """Build a patched ``httpx.AsyncClient`` class usable as a context manager."""
    client = AsyncMock()
    if error is not None:
        client.post = AsyncMock(side_effect=error)
    else:
        client.post = AsyncMock(return_value=response)
    client_cls = MagicMock()
    client_cls.return_value.__aenter__ = AsyncMock(return_value=client)
    client_cls.return_value.__aexit__ = AsyncMock(return_value=False)
    return client_cls


def _json_response(status_code: int, body) -> httpx.Response:
    request = httpx.Request("POST", "http://ranker.test/rank")
    return httpx.Response(status_code, json=body, request=request)


class TestScoreAdvisor:
    """Weighted 0-100 fit score with human-readable reasoning."""

    def test_ideal_advisor_scores_near_100(self):
        advisor = make_advisor(
            current_assignments=0,
            conversion_rate=100.0,
            specializations=["MBA"],
            average_response_time_hours=0.0,
        )
        result = score_advisor(advisor, make_lead(program_interest=["MBA"]))
        assert result.score == 100
        assert result.confidence == 100
        assert result.availability == "available"
        assert "Specialization match: MBA" in result.reasoning

    def test_weak_advisor_loses_confidence(self):
        advisor = make_advisor(
            current_assignments=9,
            max_daily_assignments=10,
            conversion_rate=10.0,
            average_response_time_hours=12.0,
        )
        result = score_advisor(advisor, make_lead(program_interest=["Law"]))
        assert result.score < 40
        assert result.confidence == 100 - 20 - 15 - 10 - 10
        assert result.workload_impact == "high"
        assert result.availability == "unavailable"

    def test_specialization_substring_match(self):
        advisor = make_advisor(specializations=["Business"])
        result = score_advisor(advisor, make_lead(program_interest=["Business Analytics"]))
        assert any(r.startswith("Specialization match") for r in result.reasoning)

    def test_full_advisor_is_unavailable(self):
        advisor = make_advisor(current_assignments=5, max_daily_assignments=5)
        assert score_advisor(advisor, make_lead()).availability == "unavailable"


class TestRecommendationRanker:
    def test_inactive_advisors_are_excluded(self):
        pool = [make_advisor(advisor_id=A1, is_active=False), make_advisor(advisor_id=A2)]
        result = RecommendationRanker().recommend(make_lead(), pool)
        assert [r.advisor_id for r in result] == [A2]

    def test_minimum_score_filters(self):
        pool = [make_advisor(current_assignments=10, conversion_rate=0.0)]
        assert RecommendationRanker().recommend(make_lead(), pool, minimum_score=90) == []


class TestHttpAdvisorRanker:
    """Collaborator failures fall back to local ranking."""

    @pytest.mark.asyncio
    async def test_no_url_uses_fallback(self):
        fallback = AsyncMock()
        fallback.rank = AsyncMock(return_value=[A1])
        ranker = HttpAdvisorRanker(url="", fallback=fallback)

        assert await ranker.rank(make_lead(), [make_advisor(advisor_id=A1)]) == [A1]
        fallback.rank.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_uses_collaborator_order_and_drops_unknown_ids(self):
        pool = [make_advisor(advisor_id=A1), make_advisor(advisor_id=A2)]
        response = _json_response(
            200, {"advisor_ids": [str(A2), "not-an-advisor", str(A2), str(A1)]}
        )
        with patch(
            "app.services.advisor_ranking.httpx.AsyncClient",
            _mock_http_client(response=response),
        ):
            ranked = await HttpAdvisorRanker(url="http://ranker.test/rank").rank(
                make_lead(), pool
            )
        assert ranked == [A2, A1]

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self):
        fallback = AsyncMock()
        fallback.rank = AsyncMock(return_value=[A1])
        with patch(
            "app.services.advisor_ranking.httpx.AsyncClient",
            _mock_http_client(error=httpx.ReadTimeout("slow")),
        ):
            ranked = await HttpAdvisorRanker(
                url="http://ranker.test/rank", fallback=fallback
            ).rank(make_lead(), [make_advisor(advisor_id=A1)])
        assert ranked == [A1]

    @pytest.mark.asyncio
    async def test_error_status_falls_back(self):
        fallback = AsyncMock()
        fallback.rank = AsyncMock(return_value=[A1])
        with patch(
            "app.services.advisor_ranking.httpx.AsyncClient",
            _mock_http_client(response=_json_response(503, {"error": "down"})),
        ):
            ranked = await HttpAdvisorRanker(
                url="http://ranker.test/rank", fallback=fallback
            ).rank(make_lead(), [make_advisor(advisor_id=A1)])
        assert ranked == [A1]

    @pytest.mark.asyncio
    async def test_malformed_body_falls_back(self):
        fallback = AsyncMock()
        fallback.rank = AsyncMock(return_value=[A1])
        with patch(
            "app.services.advisor_ranking.httpx.AsyncClient",
            _mock_http_client(response=_json_response(200, {"ranking": []})),
        ):
            ranked = await HttpAdvisorRanker(
                url="http://ranker.test/rank", fallback=fallback
            ).rank(make_lead(), [make_advisor(advisor_id=A1)])
        assert ranked == [A1]
