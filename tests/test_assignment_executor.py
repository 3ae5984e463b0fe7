"""Tests for assignment policies and capacity enforcement."""

import asyncio
from unittest.mock import AsyncMock
from uuid import UUID

import pytest

from app.core.cache import CacheService
from app.core.exceptions import (
    AdvisorNotFoundError,
    PersistenceConflictError,
    PoolExhaustedError,
    TargetAtCapacityError,
)
from app.schemas.common import AssignmentPolicy
from app.schemas.routing import AssignmentConfig
from app.services.assignment_executor import (
    AssignmentExecutor,
    select_ranked,
    select_round_robin,
    select_workload_based,
)
from tests.fakes import (
    FakeAdvisorRepository,
    FakeLeadRepository,
    FakeStore,
    make_advisor,
    make_lead,
    make_lead_row,
)

A1 = UUID("00000000-0000-0000-0000-000000000001")
A2 = UUID("00000000-0000-0000-0000-000000000002")
A3 = UUID("00000000-0000-0000-0000-000000000003")


def _make_executor(cache=None, ranker=None, max_retries=3) -> AssignmentExecutor:
    return AssignmentExecutor(
        cache=cache or CacheService(redis_client=None),
        ranker=ranker or AsyncMock(),
        max_retries=max_retries,
    )


def _make_lead_repo(lead) -> FakeLeadRepository:
    row = make_lead_row(lead_id=lead.lead_id)
    return FakeLeadRepository(FakeStore([row]))


class _CountingCursor:
    def __init__(self) -> None:
        self.position = 0

    async def next_position(self, pool_key: str) -> int:
        self.position += 1
        return self.position


# ---------------------------------------------------------------------------
# Pure selection
# ---------------------------------------------------------------------------


class TestSelection:
    """Selection functions over advisor snapshots."""

    def test_round_robin_rotates_in_id_order(self):
        pool = [make_advisor(advisor_id=a) for a in (A3, A1, A2)]
        picks = [select_round_robin(pool, p).advisor_id for p in range(1, 7)]
        assert picks == [A1, A2, A3, A1, A2, A3]

    def test_round_robin_full_member_has_no_pick_on_their_turn(self):
        pool = [
            make_advisor(advisor_id=A1),
            make_advisor(advisor_id=A2, current_assignments=10, max_daily_assignments=10),
            make_advisor(advisor_id=A3),
        ]
        assert select_round_robin(pool, 2) is None
        assert select_round_robin(pool, 3).advisor_id == A3

    def test_round_robin_empty_or_full_pool(self):
        assert select_round_robin([], 1) is None
        full = [make_advisor(current_assignments=5, max_daily_assignments=5)]
        assert select_round_robin(full, 1) is None

    def test_workload_prefers_lowest_ratio(self):
        pool = [
            make_advisor(advisor_id=A1, current_assignments=5, max_daily_assignments=10),
            make_advisor(advisor_id=A2, current_assignments=2, max_daily_assignments=10),
        ]
        assert select_workload_based(pool).advisor_id == A2

    def test_workload_prefers_specialists(self):
        pool = [
            make_advisor(advisor_id=A1, current_assignments=0),
            make_advisor(advisor_id=A2, current_assignments=6, specializations=["MBA"]),
        ]
        assert select_workload_based(pool, ["mba"]).advisor_id == A2

    def test_workload_falls_back_when_specialists_full(self):
        pool = [
            make_advisor(advisor_id=A1, current_assignments=3),
            make_advisor(
                advisor_id=A2,
                specializations=["MBA"],
                current_assignments=5,
                max_daily_assignments=5,
            ),
        ]
        assert select_workload_based(pool, ["MBA"]).advisor_id == A1

    def test_workload_tie_breaks_on_conversion_rate(self):
        pool = [
            make_advisor(advisor_id=A1, conversion_rate=10.0),
            make_advisor(advisor_id=A2, conversion_rate=40.0),
        ]
        assert select_workload_based(pool).advisor_id == A2

    def test_zero_capacity_advisor_is_never_selected(self):
        pool = [make_advisor(advisor_id=A1, max_daily_assignments=0)]
        assert select_workload_based(pool) is None

    def test_select_ranked_skips_unknown_and_full(self):
        pool = [
            make_advisor(advisor_id=A1, current_assignments=10),
            make_advisor(advisor_id=A2),
        ]
        assert select_ranked(pool, [A3, A1, A2]).advisor_id == A2
        assert select_ranked(pool, [A3]) is None


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class TestAssignmentExecutor:
    """Policy dispatch, capacity reservation and retries."""

    @pytest.mark.asyncio
    async def test_direct_assignment_consumes_capacity(self):
        repo = FakeAdvisorRepository([make_advisor(advisor_id=A1, current_assignments=2)])
        lead = make_lead()
        lead_repo = _make_lead_repo(lead)
        config = AssignmentConfig(method="direct", advisor_id=A1)

        assignment = await _make_executor().assign(lead, config, repo, lead_repo)

        assert assignment.advisor_id == A1
        assert assignment.method is AssignmentPolicy.direct
        assert repo.advisors[A1].current_assignments == 3
        assert (await lead_repo.get_by_id(lead.lead_id)).assigned_to == A1

    @pytest.mark.asyncio
    async def test_direct_target_at_capacity(self):
        repo = FakeAdvisorRepository(
            [make_advisor(advisor_id=A1, current_assignments=5, max_daily_assignments=5)]
        )
        lead = make_lead()
        config = AssignmentConfig(method="direct", advisor_id=A1)

        with pytest.raises(TargetAtCapacityError):
            await _make_executor().assign(lead, config, repo, _make_lead_repo(lead))
        assert repo.advisors[A1].current_assignments == 5

    @pytest.mark.asyncio
    async def test_direct_inactive_target(self):
        repo = FakeAdvisorRepository([make_advisor(advisor_id=A1, is_active=False)])
        lead = make_lead()
        with pytest.raises(TargetAtCapacityError):
            await _make_executor().assign(
                lead,
                AssignmentConfig(method="direct", advisor_id=A1),
                repo,
                _make_lead_repo(lead),
            )

    @pytest.mark.asyncio
    async def test_direct_unknown_target(self):
        repo = FakeAdvisorRepository([])
        lead = make_lead()
        with pytest.raises(AdvisorNotFoundError):
            await _make_executor().assign(
                lead,
                AssignmentConfig(method="direct", advisor_id=A1),
                repo,
                _make_lead_repo(lead),
            )

    @pytest.mark.asyncio
    async def test_full_sole_member_exhausts_pool(self):
        repo = FakeAdvisorRepository(
            [make_advisor(advisor_id=A1, current_assignments=5, max_daily_assignments=5)]
        )
        lead = make_lead()
        config = AssignmentConfig(method="workload_based", advisor_ids=[A1])

        with pytest.raises(PoolExhaustedError):
            await _make_executor().assign(lead, config, repo, _make_lead_repo(lead))

    @pytest.mark.asyncio
    async def test_round_robin_uses_redis_cursor(self, mock_cache, mock_redis):
        repo = FakeAdvisorRepository([make_advisor(advisor_id=a) for a in (A1, A2)])
        executor = _make_executor(cache=mock_cache)
        config = AssignmentConfig(method="round_robin", advisor_ids=[A1, A2])

        picks = []
        for _ in range(3):
            lead = make_lead()
            assignment = await executor.assign(lead, config, repo, _make_lead_repo(lead))
            picks.append(assignment.advisor_id)

        assert picks == [A1, A2, A1]
        mock_redis.incr.assert_awaited_with(f"round_robin:pool:{config.pool_key}")

    @pytest.mark.asyncio
    async def test_round_robin_falls_back_to_cursor_table(self):
        repo = FakeAdvisorRepository([make_advisor(advisor_id=a) for a in (A1, A2, A3)])
        cursor = _CountingCursor()
        executor = _make_executor()
        config = AssignmentConfig(method="round_robin", advisor_ids=[A1, A2, A3])

        picks = []
        for _ in range(4):
            lead = make_lead()
            assignment = await executor.assign(
                lead, config, repo, _make_lead_repo(lead), cursor_repo=cursor
            )
            picks.append(assignment.advisor_id)

        assert picks == [A1, A2, A3, A1]

    @pytest.mark.asyncio
    async def test_round_robin_shares_evenly_around_a_full_member(self):
        repo = FakeAdvisorRepository(
            [
                make_advisor(advisor_id=A1, current_assignments=10, max_daily_assignments=10),
                make_advisor(advisor_id=A2, max_daily_assignments=50),
                make_advisor(advisor_id=A3, max_daily_assignments=50),
            ]
        )
        cursor = _CountingCursor()
        executor = _make_executor()
        config = AssignmentConfig(method="round_robin", advisor_ids=[A1, A2, A3])

        picks = []
        for _ in range(6):
            lead = make_lead()
            assignment = await executor.assign(
                lead, config, repo, _make_lead_repo(lead), cursor_repo=cursor
            )
            picks.append(assignment.advisor_id)

        assert picks == [A2, A3, A2, A3, A2, A3]
        assert picks.count(A2) == picks.count(A3) == 3

    @pytest.mark.asyncio
    async def test_fallback_cursor_is_per_executor(self):
        repo = FakeAdvisorRepository([make_advisor(advisor_id=a) for a in (A1, A2)])
        config = AssignmentConfig(method="round_robin", advisor_ids=[A1, A2])

        picks = []
        for _ in range(2):
            lead = make_lead()
            assignment = await _make_executor().assign(
                lead, config, repo, _make_lead_repo(lead)
            )
            picks.append(assignment.advisor_id)

        assert picks == [A1, A1]

    @pytest.mark.asyncio
    async def test_persistent_race_raises_conflict(self):
        repo = FakeAdvisorRepository([make_advisor(advisor_id=A1)])
        repo.try_reserve = AsyncMock(return_value=None)
        lead = make_lead()

        with pytest.raises(PersistenceConflictError):
            await _make_executor(max_retries=2).assign(
                lead, AssignmentConfig(method="workload_based"), repo, _make_lead_repo(lead)
            )
        assert repo.try_reserve.await_count == 3

    @pytest.mark.asyncio
    async def test_lost_race_retries_on_fresh_snapshot(self):
        repo = FakeAdvisorRepository(
            [
                make_advisor(advisor_id=A1, current_assignments=0),
                make_advisor(advisor_id=A2, current_assignments=1),
            ]
        )
        real_reserve = repo.try_reserve
        calls = []

        async def flaky_reserve(advisor_id):
            calls.append(advisor_id)
            if len(calls) == 1:
                # Another writer fills A1 between snapshot and reservation
                repo.advisors[A1] = repo.advisors[A1].model_copy(
                    update={"current_assignments": 10}
                )
                return None
            return await real_reserve(advisor_id)

        repo.try_reserve = flaky_reserve
        lead = make_lead()
        assignment = await _make_executor().assign(
            lead, AssignmentConfig(method="workload_based"), repo, _make_lead_repo(lead)
        )

        assert calls == [A1, A2]
        assert assignment.advisor_id == A2

    @pytest.mark.asyncio
    async def test_concurrent_assignments_never_overcommit(self):
        repo = FakeAdvisorRepository(
            [
                make_advisor(advisor_id=A1, max_daily_assignments=3),
                make_advisor(advisor_id=A2, max_daily_assignments=2),
            ]
        )
        executor = _make_executor(max_retries=10)
        config = AssignmentConfig(method="workload_based")
        leads = [make_lead() for _ in range(12)]
        store = FakeStore([make_lead_row(lead_id=l.lead_id) for l in leads])

        results = await asyncio.gather(
            *(executor.assign(l, config, repo, FakeLeadRepository(store)) for l in leads),
            return_exceptions=True,
        )

        assigned = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(assigned) == 5
        assert all(isinstance(f, PoolExhaustedError) for f in failures)
        assert repo.advisors[A1].current_assignments == 3
        assert repo.advisors[A2].current_assignments == 2

    @pytest.mark.asyncio
    async def test_ai_based_follows_ranker(self):
        repo = FakeAdvisorRepository([make_advisor(advisor_id=a) for a in (A1, A2)])
        ranker = AsyncMock()
        ranker.rank = AsyncMock(return_value=[A2, A1])
        lead = make_lead()

        assignment = await _make_executor(ranker=ranker).assign(
            lead, AssignmentConfig(method="ai_based"), repo, _make_lead_repo(lead)
        )
        assert assignment.advisor_id == A2

    @pytest.mark.asyncio
    async def test_ai_based_falls_back_to_workload(self):
        repo = FakeAdvisorRepository(
            [
                make_advisor(advisor_id=A1, current_assignments=4),
                make_advisor(advisor_id=A2, current_assignments=1),
            ]
        )
        ranker = AsyncMock()
        ranker.rank = AsyncMock(return_value=[])
        lead = make_lead()

        assignment = await _make_executor(ranker=ranker).assign(
            lead, AssignmentConfig(method="ai_based"), repo, _make_lead_repo(lead)
        )
        assert assignment.advisor_id == A2

    @pytest.mark.asyncio
    async def test_release_returns_capacity(self):
        repo = FakeAdvisorRepository([make_advisor(advisor_id=A1, current_assignments=1)])
        executor = _make_executor()
        await executor.release(A1, repo)
        await executor.release(A1, repo)
        assert repo.advisors[A1].current_assignments == 0

    @pytest.mark.asyncio
    async def test_recommend_orders_by_score(self):
        repo = FakeAdvisorRepository(
            [
                make_advisor(advisor_id=A1, current_assignments=9, conversion_rate=5.0),
                make_advisor(
                    advisor_id=A2,
                    specializations=["MBA"],
                    conversion_rate=60.0,
                    average_response_time_hours=1.0,
                ),
            ]
        )
        recommendations = await _make_executor().recommend(make_lead(), repo, limit=1)
        assert [r.advisor_id for r in recommendations] == [A2]
