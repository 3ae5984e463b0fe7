import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    ActionDispatchFailure,
    CollaboratorUnavailableError,
    InvalidRuleConfigError,
    RoutingEngineError,
)
from app.repositories.advisor_repository import AdvisorRepository
from app.repositories.cursor_repository import CursorRepository
from app.repositories.execution_log_repository import ExecutionLogRepository
from app.repositories.lead_repository import LeadRepository
from app.repositories.routing_rule_repository import RoutingRuleRepository
from app.schemas.automation import AutomationRuleDefinition
from app.schemas.common import ExecutionResult
from app.schemas.lead import LeadSnapshot

logger = logging.getLogger(__name__)


class ActionContext(BaseModel):
    """What an action handler gets to work with."""

    model_config = ConfigDict(frozen=True)

    rule: AutomationRuleDefinition
    lead: LeadSnapshot
    fired_at: datetime


class DispatchReport(BaseModel):
    succeeded: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)

    @property
    def fully_successful(self) -> bool:
        return not self.failed


ActionHandler = Callable[[ActionContext], Awaitable[None]]


class WebhookNotifier:
    """Posts notification and task requests to the external collaborator.

    Delivery itself (email, SMS, task board) is owned by the
    collaborator.  Without ``NOTIFICATION_WEBHOOK_URL`` requests are only
    logged.
    """

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None) -> None:
        self._url: str = url if url is not None else settings.NOTIFICATION_WEBHOOK_URL
        self._timeout: float = (
            timeout if timeout is not None else settings.COLLABORATOR_TIMEOUT_SECONDS
        )

    async def send(self, action: str, payload: Dict[str, Any]) -> None:
        if not self._url:
            logger.info("Notification '%s' (no webhook configured): %s", action, payload)
            return
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self._url, json={"action": action, **payload})
                response.raise_for_status()
        except httpx.TimeoutException:
            logger.error("Notification webhook timed out: %s", self._url)
            raise CollaboratorUnavailableError("Notification webhook timed out")
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Notification webhook returned %s: %s",
                exc.response.status_code,
                self._url,
            )
            raise CollaboratorUnavailableError(
                f"Notification webhook returned {exc.response.status_code}"
            )
        except httpx.HTTPError as exc:
            logger.error("Notification webhook unreachable: %s (%s)", self._url, exc)
            raise CollaboratorUnavailableError("Notification webhook unavailable")


class ActionDispatcher:
    """Registry of named automation actions.

    Each action runs in isolation: one failing action is logged and
    reported, the remaining actions of the same firing still run.
    Handlers that write to the database open their own session so a
    failed action cannot roll back a successful one.
    """

    def __init__(
        self,
        session_factory: Callable[..., AsyncSession],
        routing_service: Any = None,
        handover_service: Any = None,
        notifier: Optional[WebhookNotifier] = None,
    ) -> None:
        self._session_factory = session_factory
        self._routing = routing_service
        self._handover = handover_service
        self._notifier = notifier or WebhookNotifier()
        self._handlers: Dict[str, ActionHandler] = {
            "convert_to_student": self._convert_to_student,
            "assign_advisor": self._assign,
            "assign_specialist": self._assign,
            "reassign": self._reassign,
            "send_email": self._notify("send_email"),
            "send_alert": self._notify("send_alert"),
            "notify_registrar": self._notify("notify_registrar"),
            "create_task": self._notify("create_task"),
            "create_urgent_task": self._notify("create_urgent_task"),
            "update_priority": self._set_priority("high"),
            "prioritize_lead": self._set_priority("urgent"),
        }

    @property
    def action_names(self) -> List[str]:
        return sorted(self._handlers)

    def register(self, name: str, handler: ActionHandler) -> None:
        self._handlers[name] = handler

    def validate(self, actions: Iterable[str]) -> None:
        """Fail fast on action names nobody handles."""
        unknown = sorted(set(actions) - set(self._handlers))
        if unknown:
            raise InvalidRuleConfigError(
                f"Unknown automation action(s) {unknown}; expected {self.action_names}"
            )

    async def dispatch(self, actions: Iterable[str], context: ActionContext) -> DispatchReport:
        report = DispatchReport()
        for name in actions:
            handler = self._handlers.get(name)
            try:
                if handler is None:
                    raise ActionDispatchFailure(f"No handler for action '{name}'")
                await handler(context)
                report.succeeded.append(name)
            except RoutingEngineError as exc:
                logger.warning(
                    "Action '%s' failed for lead %s (rule %s): %s",
                    name,
                    context.lead.lead_id,
                    context.rule.name,
                    exc.detail,
                )
                report.failed.append(name)
            except Exception:
                logger.error(
                    "Action '%s' crashed for lead %s (rule %s)",
                    name,
                    context.lead.lead_id,
                    context.rule.name,
                    exc_info=True,
                )
                report.failed.append(name)
        return report

    # ------------------------------------------------------------------
    # Built-in handlers
    # ------------------------------------------------------------------

    async def _convert_to_student(self, context: ActionContext) -> None:
        if self._handover is None:
            raise ActionDispatchFailure("Conversion is not available")
        try:
            await self._handover.convert_in_new_session(context.lead.lead_id, "automation")
        except RoutingEngineError as exc:
            raise ActionDispatchFailure(exc.detail) from exc

    async def _route(self, session: AsyncSession, lead_id) -> None:
        result = await self._routing.route_lead(
            lead_id,
            RoutingRuleRepository(session),
            LeadRepository(session),
            AdvisorRepository(session),
            ExecutionLogRepository(session),
            cursor_repo=CursorRepository(session),
            strict=True,
        )
        if result.needs_manual_routing:
            raise ActionDispatchFailure(result.reason or "Lead needs manual routing")
        if result.result is ExecutionResult.skipped:
            logger.info("Lead %s not re-routed: %s", lead_id, result.reason)

    async def _assign(self, context: ActionContext) -> None:
        if self._routing is None:
            raise ActionDispatchFailure("Routing is not available")
        async with self._session_factory() as session:
            try:
                await self._route(session, context.lead.lead_id)
            except RoutingEngineError as exc:
                raise ActionDispatchFailure(exc.detail) from exc

    async def _reassign(self, context: ActionContext) -> None:
        """Release the current advisor and route the lead again."""
        if self._routing is None:
            raise ActionDispatchFailure("Routing is not available")
        async with self._session_factory() as session:
            lead_repo = LeadRepository(session)
            lead = await lead_repo.get_for_update(context.lead.lead_id)
            if lead is None:
                raise ActionDispatchFailure(f"Lead {context.lead.lead_id} no longer exists")
            if lead.assigned_to is not None:
                await AdvisorRepository(session).release(lead.assigned_to)
                await lead_repo.clear_assignment(lead.lead_id)
                await lead_repo.commit()
            try:
                await self._route(session, context.lead.lead_id)
            except RoutingEngineError as exc:
                raise ActionDispatchFailure(exc.detail) from exc

    def _notify(self, action: str) -> ActionHandler:
        async def handler(context: ActionContext) -> None:
            lead = context.lead
            await self._notifier.send(
                action,
                {
                    "lead_id": str(lead.lead_id),
                    "lead_name": lead.full_name,
                    "email": lead.email,
                    "assigned_to": str(lead.assigned_to) if lead.assigned_to else None,
                    "rule": context.rule.name,
                    "fired_at": context.fired_at.isoformat(),
                },
            )

        return handler

    def _set_priority(self, priority: str) -> ActionHandler:
        async def handler(context: ActionContext) -> None:
            async with self._session_factory() as session:
                lead_repo = LeadRepository(session)
                await lead_repo.set_priority(context.lead.lead_id, priority)
                await lead_repo.commit()

        return handler
