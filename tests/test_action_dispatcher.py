"""Tests for automation action handlers."""

import logging
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import httpx
import pytest

from app.core.exceptions import (
    CollaboratorUnavailableError,
    InvalidRuleConfigError,
    QualificationNotMetError,
)
from app.schemas.automation import AutomationRuleDefinition
from app.schemas.routing import RouteLeadResponse
from app.services.action_dispatcher import ActionContext, ActionDispatcher, WebhookNotifier
from tests.fakes import FakeLeadRepository, FakeStore, fake_session_factory, make_lead, make_lead_row


def _make_context(lead=None) -> ActionContext:
    return ActionContext(
        rule=AutomationRuleDefinition(
            rule_id=uuid4(),
            name="Hot lead",
            trigger_type="score_threshold",
            conditions={"minScore": 80},
            actions=["send_alert"],
        ),
        lead=lead or make_lead(),
        fired_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
    )


class TestActionDispatcher:
    """Every action runs; failures are reported per action."""

    def test_validate_rejects_unknown_actions(self):
        dispatcher = ActionDispatcher(session_factory=fake_session_factory)
        dispatcher.validate(["send_email", "prioritize_lead"])
        with pytest.raises(InvalidRuleConfigError):
            dispatcher.validate(["send_email", "launch_rocket"])

    @pytest.mark.asyncio
    async def test_notifications_go_through_notifier(self):
        notifier = AsyncMock()
        dispatcher = ActionDispatcher(session_factory=fake_session_factory, notifier=notifier)
        context = _make_context()

        report = await dispatcher.dispatch(["send_email", "create_task"], context)

        assert report.succeeded == ["send_email", "create_task"]
        assert report.fully_successful
        action, payload = notifier.send.await_args_list[0].args
        assert action == "send_email"
        assert payload["lead_id"] == str(context.lead.lead_id)
        assert payload["rule"] == "Hot lead"

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self):
        notifier = AsyncMock()
        notifier.send = AsyncMock(
            side_effect=[CollaboratorUnavailableError("webhook down"), None]
        )
        dispatcher = ActionDispatcher(session_factory=fake_session_factory, notifier=notifier)

        report = await dispatcher.dispatch(["send_email", "send_alert"], _make_context())

        assert report.failed == ["send_email"]
        assert report.succeeded == ["send_alert"]
        assert not report.fully_successful

    @pytest.mark.asyncio
    async def test_missing_handler_is_reported(self):
        dispatcher = ActionDispatcher(session_factory=fake_session_factory)
        report = await dispatcher.dispatch(["launch_rocket"], _make_context())
        assert report.failed == ["launch_rocket"]

    @pytest.mark.asyncio
    async def test_convert_failure_is_reported(self):
        handover = AsyncMock()
        handover.convert_in_new_session = AsyncMock(
            side_effect=QualificationNotMetError("score 40")
        )
        dispatcher = ActionDispatcher(
            session_factory=fake_session_factory, handover_service=handover
        )
        context = _make_context()

        report = await dispatcher.dispatch(["convert_to_student"], context)

        assert report.failed == ["convert_to_student"]
        handover.convert_in_new_session.assert_awaited_once_with(
            context.lead.lead_id, "automation"
        )

    @pytest.mark.asyncio
    async def test_prioritize_lead_sets_urgent(self):
        row = make_lead_row()
        store = FakeStore([row])
        dispatcher = ActionDispatcher(session_factory=fake_session_factory)
        with patch(
            "app.services.action_dispatcher.LeadRepository",
            lambda session: FakeLeadRepository(store),
        ):
            report = await dispatcher.dispatch(
                ["prioritize_lead"], _make_context(make_lead(lead_id=row.lead_id))
            )
        assert report.fully_successful
        assert row.priority == "urgent"

    @pytest.mark.asyncio
    async def test_assign_advisor_needing_manual_routing_fails(self):
        routing = AsyncMock()
        lead = make_lead()
        routing.route_lead = AsyncMock(
            return_value=RouteLeadResponse(
                lead_id=lead.lead_id,
                routed=False,
                needs_manual_routing=True,
                reason="No matching routing rule",
            )
        )
        dispatcher = ActionDispatcher(
            session_factory=fake_session_factory, routing_service=routing
        )
        with patch("app.services.action_dispatcher.RoutingRuleRepository"), patch(
            "app.services.action_dispatcher.LeadRepository"
        ), patch("app.services.action_dispatcher.AdvisorRepository"), patch(
            "app.services.action_dispatcher.ExecutionLogRepository"
        ), patch("app.services.action_dispatcher.CursorRepository"):
            report = await dispatcher.dispatch(["assign_advisor"], _make_context(lead))

        assert report.failed == ["assign_advisor"]
        assert routing.route_lead.await_args.kwargs["strict"] is True

    @pytest.mark.asyncio
    async def test_reassign_releases_previous_advisor(self):
        previous = uuid4()
        row = make_lead_row(assigned_to=previous, assignment_method="round_robin")
        store = FakeStore([row])
        advisor_repo = AsyncMock()
        routing = AsyncMock()
        routing.route_lead = AsyncMock(
            return_value=RouteLeadResponse(lead_id=row.lead_id, routed=True)
        )
        dispatcher = ActionDispatcher(
            session_factory=fake_session_factory, routing_service=routing
        )
        with patch(
            "app.services.action_dispatcher.LeadRepository",
            lambda session: FakeLeadRepository(store),
        ), patch(
            "app.services.action_dispatcher.AdvisorRepository",
            lambda session: advisor_repo,
        ), patch("app.services.action_dispatcher.RoutingRuleRepository"), patch(
            "app.services.action_dispatcher.ExecutionLogRepository"
        ), patch("app.services.action_dispatcher.CursorRepository"):
            report = await dispatcher.dispatch(
                ["reassign"], _make_context(make_lead(lead_id=row.lead_id))
            )

        assert report.fully_successful
        advisor_repo.release.assert_awaited_once_with(previous)
        assert row.assigned_to is None


class TestWebhookNotifier:
    @pytest.mark.asyncio
    async def test_without_url_only_logs(self, caplog):
        with caplog.at_level(logging.INFO):
            await WebhookNotifier(url="").send("send_email", {"lead_id": "x"})
        assert "no webhook configured" in caplog.text

    @pytest.mark.asyncio
    async def test_error_status_raises_collaborator_error(self):
        request = httpx.Request("POST", "http://hooks.test/notify")
        client = AsyncMock()
        client.post = AsyncMock(return_value=httpx.Response(500, request=request))
        client_cls = MagicMock()
        client_cls.return_value.__aenter__ = AsyncMock(return_value=client)
        client_cls.return_value.__aexit__ = AsyncMock(return_value=False)

        with patch("app.services.action_dispatcher.httpx.AsyncClient", client_cls):
            with pytest.raises(CollaboratorUnavailableError):
                await WebhookNotifier(url="http://hooks.test/notify").send(
                    "send_alert", {"lead_id": "x"}
                )
