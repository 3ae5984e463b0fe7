"""Tests for team capacity snapshots and workload balance."""

from types import SimpleNamespace
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from app.schemas.capacity import TeamCapacity
from app.services.capacity_tracker import (
    CapacityTracker,
    balance_score,
    optimize_workload,
    team_capacity,
)
from tests.fakes import make_advisor


def _make_team(members, specializations=("MBA",)) -> SimpleNamespace:
    return SimpleNamespace(
        team_id=uuid4(),
        name="Graduate Admissions",
        region="EMEA",
        specializations=list(specializations),
        members=members,
    )


def _make_member_row(**overrides) -> SimpleNamespace:
    data = dict(
        advisor_id=uuid4(),
        team_id=None,
        full_name="Member",
        specializations=None,
        current_assignments=0,
        max_daily_assignments=10,
        is_active=True,
        conversion_rate=None,
        average_response_time_hours=None,
        team=None,
    )
    data.update(overrides)
    return SimpleNamespace(**data)


class TestTeamCapacity:
    """Derived totals and the utilization clamp."""

    def test_totals_and_utilization(self):
        team = TeamCapacity(
            team_id=uuid4(),
            name="T",
            members=(
                make_advisor(current_assignments=3, max_daily_assignments=10),
                make_advisor(current_assignments=2, max_daily_assignments=10),
            ),
        )
        assert team.total_capacity == 20
        assert team.current_load == 5
        assert team.utilization_rate == 25.0

    def test_zero_capacity_reports_zero(self):
        team = TeamCapacity(
            team_id=uuid4(),
            name="T",
            members=(make_advisor(current_assignments=0, max_daily_assignments=0),),
        )
        assert team.utilization_rate == 0.0

    def test_overloaded_team_is_clamped(self):
        team = TeamCapacity(
            team_id=uuid4(),
            name="T",
            members=(make_advisor(current_assignments=15, max_daily_assignments=10),),
        )
        assert team.utilization_rate == 100.0

    def test_members_inherit_team_specializations(self):
        team_row = _make_team([])
        member = _make_member_row(team=team_row)
        team_row.members = [member]

        capacity = team_capacity(team_row)

        assert capacity.members[0].specializations == ("MBA",)
        assert capacity.specializations == ("MBA",)


class TestWorkloadOptimization:
    def test_balance_score_perfectly_even(self):
        assert balance_score([40.0, 40.0, 40.0]) == 100.0
        assert balance_score([]) == 100.0

    def test_balance_score_spread(self):
        assert balance_score([0.0, 100.0]) == 50.0

    def test_recommendations(self):
        busy = make_advisor(full_name="Busy", current_assignments=10, max_daily_assignments=10)
        idle = make_advisor(full_name="Idle", current_assignments=1, max_daily_assignments=10)
        steady = make_advisor(full_name="Steady", current_assignments=6, max_daily_assignments=10)

        result = optimize_workload([busy, idle, steady])

        kinds = {(r.type, r.advisor_id) for r in result.recommendations}
        assert ("reduce_load", busy.advisor_id) in kinds
        assert ("redistribute", idle.advisor_id) in kinds
        assert all(r.advisor_id != steady.advisor_id for r in result.recommendations)
        assert "9 more leads" in next(
            r.description for r in result.recommendations if r.type == "redistribute"
        )

    def test_inactive_advisors_are_ignored(self):
        result = optimize_workload([make_advisor(is_active=False, current_assignments=0)])
        assert result.recommendations == []
        assert result.balance_score == 100.0


class TestCapacityTracker:
    @pytest.mark.asyncio
    async def test_reset_daily_commits(self):
        repo = AsyncMock()
        repo.reset_daily_assignments = AsyncMock(return_value=4)

        count = await CapacityTracker().reset_daily(repo)

        assert count == 4
        repo.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_workload_optimization_reads_all_advisors(self):
        repo = AsyncMock()
        repo.list_all = AsyncMock(return_value=[make_advisor(current_assignments=5)])

        result = await CapacityTracker().get_workload_optimization(repo)

        assert result.balance_score == 100.0
