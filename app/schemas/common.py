from enum import Enum


class LeadStatus(str, Enum):
    new = "new"
    contacted = "contacted"
    qualified = "qualified"
    nurturing = "nurturing"
    converted = "converted"
    lost = "lost"
    unqualified = "unqualified"


class LeadSource(str, Enum):
    web = "web"
    social_media = "social_media"
    event = "event"
    agent = "agent"
    email = "email"
    referral = "referral"
    phone = "phone"
    walk_in = "walk_in"
    api_import = "api_import"
    csv_import = "csv_import"
    chatbot = "chatbot"
    ads = "ads"
    forms = "forms"


class LeadPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class AssignmentPolicy(str, Enum):
    direct = "direct"
    round_robin = "round_robin"
    workload_based = "workload_based"
    ai_based = "ai_based"


class AutomationTrigger(str, Enum):
    score_threshold = "score_threshold"
    time_based = "time_based"
    activity_based = "activity_based"
    status_change = "status_change"


class ExecutionResult(str, Enum):
    success = "success"
    failure = "failure"
    skipped = "skipped"


class QualificationBand(str, Enum):
    ready = "ready"
    almost_ready = "almost_ready"
    needs_work = "needs_work"
