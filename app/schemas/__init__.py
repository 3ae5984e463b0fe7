"""Pydantic schemas package with re-exports for convenience."""

# Common enums
from app.schemas.common import (
    LeadStatus as LeadStatus,
    LeadSource as LeadSource,
    LeadPriority as LeadPriority,
    AssignmentPolicy as AssignmentPolicy,
    AutomationTrigger as AutomationTrigger,
    ExecutionResult as ExecutionResult,
    QualificationBand as QualificationBand,
)

# Snapshots passed into the pure core
from app.schemas.lead import (
    LeadSnapshot as LeadSnapshot,
    LeadSnapshotInput as LeadSnapshotInput,
)
from app.schemas.capacity import (
    AdvisorSnapshot as AdvisorSnapshot,
    TeamCapacity as TeamCapacity,
    AssignmentRecommendation as AssignmentRecommendation,
    WorkloadOptimization as WorkloadOptimization,
)

# Routing schemas
from app.schemas.routing import (
    AssignmentConfig as AssignmentConfig,
    RoutingRuleDefinition as RoutingRuleDefinition,
    MatchResult as MatchResult,
    Assignment as Assignment,
    RouteLeadResponse as RouteLeadResponse,
)

# Automation schemas
from app.schemas.automation import (
    AutomationRuleDefinition as AutomationRuleDefinition,
    TriggerState as TriggerState,
    TickReport as TickReport,
)

# Handover schemas
from app.schemas.handover import (
    QualificationResult as QualificationResult,
    ConversionResult as ConversionResult,
    HandoverQueue as HandoverQueue,
)
