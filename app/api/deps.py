"""Dependency factories used by the v1 endpoints.

Everything is built in ``app.dependencies``; endpoint modules import from
here so the API layer has a single seam for ``dependency_overrides``.
"""

from app.dependencies import (
    get_advisor_repo,
    get_assignment_executor,
    get_automation_engine,
    get_automation_rule_repo,
    get_capacity_tracker,
    get_conversion_repo,
    get_cursor_repo,
    get_execution_log_repo,
    get_handover_service,
    get_lead_repo,
    get_routing_rule_repo,
    get_routing_service,
)

__all__ = [
    # routing
    "get_routing_service",
    "get_routing_rule_repo",
    "get_execution_log_repo",
    "get_cursor_repo",
    # capacity
    "get_capacity_tracker",
    "get_assignment_executor",
    "get_advisor_repo",
    "get_lead_repo",
    # automation
    "get_automation_engine",
    "get_automation_rule_repo",
    # handover
    "get_handover_service",
    "get_conversion_repo",
]
