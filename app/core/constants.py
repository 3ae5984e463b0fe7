from typing import FrozenSet

from app.schemas.common import (
    AssignmentPolicy,
    AutomationTrigger,
    ExecutionResult,
    LeadStatus,
)

LEAD_STATUSES: FrozenSet[str] = frozenset(s.value for s in LeadStatus)

# Terminal states are neither routed nor scanned by automation
TERMINAL_STATUSES: FrozenSet[str] = frozenset({"converted", "lost"})

OPEN_STATUSES: FrozenSet[str] = LEAD_STATUSES - TERMINAL_STATUSES

ASSIGNMENT_POLICIES: FrozenSet[str] = frozenset(p.value for p in AssignmentPolicy)

# Assignment methods counted as "automatic" in routing metrics
AUTOMATIC_ASSIGNMENT_METHODS: FrozenSet[str] = frozenset(
    {"round_robin", "workload_based", "ai_based"}
)

AUTOMATION_TRIGGERS: FrozenSet[str] = frozenset(t.value for t in AutomationTrigger)

EXECUTION_RESULTS: FrozenSet[str] = frozenset(r.value for r in ExecutionResult)

CONVERSION_METHODS: FrozenSet[str] = frozenset({"manual", "bulk", "automation"})

# Round-robin counters expire after a day of inactivity
ROUND_ROBIN_TTL: int = 86400

# Workload thresholds used by the capacity dashboard (percent)
OVERLOADED_UTILIZATION: float = 90.0
UNDERUTILIZED_UTILIZATION: float = 50.0

STUDENT_NUMBER_PREFIX: str = "STU"
