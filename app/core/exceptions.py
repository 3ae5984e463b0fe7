class RoutingEngineError(Exception):
    """Base class for all routing-engine domain exceptions.

    Every custom exception in this module inherits from here so that a
    single ``except RoutingEngineError`` clause can catch any domain
    error.
    """

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(detail)


class LeadNotFoundError(RoutingEngineError):
    """Raised when a requested lead does not exist."""

    def __init__(self, detail: str = "Lead not found"):
        super().__init__(detail)


class AdvisorNotFoundError(RoutingEngineError):
    """Raised when a requested advisor does not exist."""

    def __init__(self, detail: str = "Advisor not found"):
        super().__init__(detail)


class RoutingRuleNotFoundError(RoutingEngineError):
    """Raised when a routing or automation rule does not exist."""

    def __init__(self, detail: str = "Rule not found"):
        super().__init__(detail)


class InvalidRuleConfigError(RoutingEngineError):
    """Raised at rule-load time for malformed conditions, policies or actions.

    Rules are validated when they are read or written, never lazily at
    evaluation time, so a bad rule cannot silently no-op.
    """

    def __init__(self, detail: str = "Invalid rule configuration"):
        super().__init__(detail)


class AssignmentError(RoutingEngineError):
    """Base for assignment failures that require manual routing."""

    retryable: bool = True

    def __init__(self, detail: str = "Manual assignment required"):
        super().__init__(detail)


class TargetAtCapacityError(AssignmentError):
    """Raised when a ``direct`` target is inactive or at daily capacity."""

    def __init__(self, detail: str = "Target advisor is at capacity"):
        super().__init__(detail)


class PoolExhaustedError(AssignmentError):
    """Raised when every member of an assignment pool is at capacity."""

    def __init__(self, detail: str = "All advisors in the pool are at capacity"):
        super().__init__(detail)


class PersistenceConflictError(AssignmentError):
    """Raised when a concurrent write kept winning the capacity race.

    The executor retries with a fresh snapshot a bounded number of times
    before surfacing this to the caller.
    """

    def __init__(self, detail: str = "Concurrent capacity update conflict"):
        super().__init__(detail)


class AlreadyConvertedError(RoutingEngineError):
    """Idempotent no-op signal: the lead already has a conversion record."""

    def __init__(self, detail: str = "Lead already converted"):
        super().__init__(detail)


class QualificationNotMetError(RoutingEngineError):
    """Raised when conversion is requested for a lead below the Ready bar."""

    def __init__(self, detail: str = "Lead does not meet qualification threshold"):
        super().__init__(detail)


class ActionDispatchFailure(RoutingEngineError):
    """Raised by an automation action handler.

    Caught per action by the dispatcher; never aborts rule processing.
    """

    def __init__(self, detail: str = "Automation action failed"):
        super().__init__(detail)


class CollaboratorUnavailableError(RoutingEngineError):
    """Raised when an external collaborator (AI ranking, notifications) fails."""

    def __init__(self, detail: str = "External collaborator unavailable"):
        super().__init__(detail)
