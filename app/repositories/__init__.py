"""Repository layer; all database access goes through here.

Repositories encapsulate SQLAlchemy queries so that the service layer
only contains routing, automation and handover logic.
"""

from app.repositories.lead_repository import LeadRepository
from app.repositories.advisor_repository import AdvisorRepository
from app.repositories.routing_rule_repository import RoutingRuleRepository
from app.repositories.execution_log_repository import ExecutionLogRepository
from app.repositories.automation_rule_repository import AutomationRuleRepository
from app.repositories.automation_state_repository import AutomationStateRepository
from app.repositories.cursor_repository import CursorRepository
from app.repositories.conversion_repository import ConversionRepository

__all__ = [
    "LeadRepository",
    "AdvisorRepository",
    "RoutingRuleRepository",
    "ExecutionLogRepository",
    "AutomationRuleRepository",
    "AutomationStateRepository",
    "CursorRepository",
    "ConversionRepository",
]
