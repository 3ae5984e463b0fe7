"""Pure trigger decisions for automation rules.

Each decision takes the rule, the lead's current snapshot and the
marker recorded the last time this rule looked at this lead, and
returns whether to fire plus the marker to store next.  Firing is
edge-triggered: a lead that stays inside a trigger band, stays idle
past the same reference timestamp or keeps the same status does not
fire again.
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, Optional

from app.core.exceptions import InvalidRuleConfigError
from app.schemas.automation import (
    AutomationRuleDefinition,
    TriggerDecision,
    TriggerState,
)
from app.schemas.common import AutomationTrigger
from app.schemas.lead import LeadSnapshot

# Condition keys accepted per trigger type
TRIGGER_CONDITION_KEYS: Dict[AutomationTrigger, frozenset] = {
    AutomationTrigger.score_threshold: frozenset({"minScore", "maxScore", "requiredStatus"}),
    AutomationTrigger.time_based: frozenset({"daysInactive", "hoursInactive", "excludeStatuses"}),
    AutomationTrigger.activity_based: frozenset({"activityType", "hasProgram", "isNewLead"}),
    AutomationTrigger.status_change: frozenset({"fromStatus", "toStatus"}),
}


def _as_set(value: Any) -> Optional[frozenset]:
    """Normalise a string-or-list condition value to a lowercase set."""
    if value is None:
        return None
    if isinstance(value, str):
        return frozenset({value.lower()})
    return frozenset(str(v).lower() for v in value)


def _matches(value: Optional[str], allowed: Optional[frozenset]) -> bool:
    if allowed is None:
        return True
    return value is not None and value.lower() in allowed


def _number(conditions: Dict[str, Any], key: str) -> Optional[float]:
    value = conditions.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidRuleConfigError(f"Condition '{key}' must be a number")
    if value < 0:
        raise InvalidRuleConfigError(f"Condition '{key}' must not be negative")
    return float(value)


def _string_list(conditions: Dict[str, Any], key: str) -> None:
    value = conditions.get(key)
    if value is None or isinstance(value, str):
        return
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise InvalidRuleConfigError(
            f"Condition '{key}' must be a string or a list of strings"
        )


def validate_trigger_conditions(
    trigger_type: AutomationTrigger, conditions: Dict[str, Any]
) -> None:
    """Reject unknown keys and ill-typed values for *trigger_type*."""
    allowed = TRIGGER_CONDITION_KEYS[trigger_type]
    unknown = sorted(set(conditions) - allowed)
    if unknown:
        raise InvalidRuleConfigError(
            f"Unknown condition(s) {unknown} for trigger '{trigger_type.value}'; "
            f"expected {sorted(allowed)}"
        )

    if trigger_type is AutomationTrigger.score_threshold:
        low, high = _number(conditions, "minScore"), _number(conditions, "maxScore")
        if low is None and high is None:
            raise InvalidRuleConfigError("score_threshold needs minScore or maxScore")
        if low is not None and high is not None and low > high:
            raise InvalidRuleConfigError("minScore must not exceed maxScore")
        _string_list(conditions, "requiredStatus")
    elif trigger_type is AutomationTrigger.time_based:
        days, hours = _number(conditions, "daysInactive"), _number(conditions, "hoursInactive")
        if not days and not hours:
            raise InvalidRuleConfigError("time_based needs daysInactive or hoursInactive")
        _string_list(conditions, "excludeStatuses")
    elif trigger_type is AutomationTrigger.activity_based:
        _string_list(conditions, "activityType")
        for key in ("hasProgram", "isNewLead"):
            if key in conditions and not isinstance(conditions[key], bool):
                raise InvalidRuleConfigError(f"Condition '{key}' must be true or false")
    elif trigger_type is AutomationTrigger.status_change:
        if not conditions.get("fromStatus") and not conditions.get("toStatus"):
            raise InvalidRuleConfigError("status_change needs fromStatus or toStatus")
        _string_list(conditions, "fromStatus")
        _string_list(conditions, "toStatus")


def _observe(state: TriggerState, lead: LeadSnapshot, **changes: Any) -> TriggerState:
    return state.model_copy(
        update={
            "observed_score": lead.lead_score,
            "observed_status": lead.status,
            "observed_activity_at": lead.last_activity_at,
            **changes,
        }
    )


def _score_threshold(
    rule: AutomationRuleDefinition, lead: LeadSnapshot, state: TriggerState, now: datetime
) -> TriggerDecision:
    low = rule.conditions.get("minScore", 0)
    high = rule.conditions.get("maxScore", 100)
    in_band = low <= lead.lead_score <= high and _matches(
        lead.status, _as_set(rule.conditions.get("requiredStatus"))
    )
    fire = in_band and not state.in_band
    return TriggerDecision(
        fire=fire,
        next_state=_observe(state, lead, in_band=in_band),
        reason=(
            f"score {lead.lead_score} entered [{low}, {high}]"
            if fire
            else "no band transition"
        ),
    )


def _time_based(
    rule: AutomationRuleDefinition, lead: LeadSnapshot, state: TriggerState, now: datetime
) -> TriggerDecision:
    threshold = timedelta(
        days=rule.conditions.get("daysInactive", 0) or 0,
        hours=rule.conditions.get("hoursInactive", 0) or 0,
    )
    reference = lead.last_activity_at or lead.created_at
    excluded = _as_set(rule.conditions.get("excludeStatuses")) or frozenset()
    due = (
        reference is not None
        and lead.status.lower() not in excluded
        and now - reference >= threshold
    )
    fire = due and state.nudged_for != reference
    return TriggerDecision(
        fire=fire,
        next_state=_observe(
            state, lead, nudged_for=reference if fire else state.nudged_for
        ),
        reason=f"inactive since {reference}" if fire else "not due",
    )


def _activity_based(
    rule: AutomationRuleDefinition, lead: LeadSnapshot, state: TriggerState, now: datetime
) -> TriggerDecision:
    seen = state.observed_activity_at
    new_activity = (
        state.version is not None
        and lead.last_activity_at is not None
        and (seen is None or lead.last_activity_at > seen)
    )
    conditions = rule.conditions
    fire = (
        new_activity
        and _matches(lead.last_activity_type, _as_set(conditions.get("activityType")))
        and (
            "hasProgram" not in conditions
            or bool(lead.program_interest) == conditions["hasProgram"]
        )
        and ("isNewLead" not in conditions or (lead.status == "new") == conditions["isNewLead"])
    )
    return TriggerDecision(
        fire=fire,
        next_state=_observe(state, lead),
        reason=f"new {lead.last_activity_type or 'activity'}" if fire else "no new matching activity",
    )


def _status_change(
    rule: AutomationRuleDefinition, lead: LeadSnapshot, state: TriggerState, now: datetime
) -> TriggerDecision:
    previous = state.observed_status
    changed = state.version is not None and previous is not None and previous != lead.status
    fire = (
        changed
        and _matches(previous, _as_set(rule.conditions.get("fromStatus")))
        and _matches(lead.status, _as_set(rule.conditions.get("toStatus")))
    )
    return TriggerDecision(
        fire=fire,
        next_state=_observe(state, lead),
        reason=f"status {previous} -> {lead.status}" if fire else "no matching transition",
    )


_DECIDERS: Dict[AutomationTrigger, Callable[..., TriggerDecision]] = {
    AutomationTrigger.score_threshold: _score_threshold,
    AutomationTrigger.time_based: _time_based,
    AutomationTrigger.activity_based: _activity_based,
    AutomationTrigger.status_change: _status_change,
}


def decide(
    rule: AutomationRuleDefinition,
    lead: LeadSnapshot,
    state: TriggerState,
    now: datetime,
) -> TriggerDecision:
    """Decide whether *rule* fires for *lead* given the stored *state*."""
    return _DECIDERS[rule.trigger_type](rule, lead, state, now)


def state_changed(before: TriggerState, after: TriggerState) -> bool:
    """Whether *after* differs from *before* in anything but ``version``."""
    fields: Iterable[str] = (f for f in TriggerState.model_fields if f != "version")
    return any(getattr(before, f) != getattr(after, f) for f in fields)
