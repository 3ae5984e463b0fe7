from app.models.base import Base
from app.models.lead import Lead
from app.models.team import Team
from app.models.advisor import Advisor
from app.models.routing_rule import RoutingRule
from app.models.rule_execution_log import RuleExecutionLog
from app.models.automation_rule import AutomationRule
from app.models.automation_execution_log import AutomationExecutionLog
from app.models.automation_lead_state import AutomationLeadState
from app.models.round_robin_cursor import RoundRobinCursor
from app.models.student import Student
from app.models.conversion_record import ConversionRecord

__all__ = [
    "Base",
    "Lead",
    "Team",
    "Advisor",
    "RoutingRule",
    "RuleExecutionLog",
    "AutomationRule",
    "AutomationExecutionLog",
    "AutomationLeadState",
    "RoundRobinCursor",
    "Student",
    "ConversionRecord",
]
