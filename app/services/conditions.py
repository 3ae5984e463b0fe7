"""Pure evaluation of routing condition trees against lead snapshots."""

from typing import Any, List, Optional, Tuple

from app.schemas.conditions import (
    AndCondition,
    Condition,
    EqualsCondition,
    InSetCondition,
    NotCondition,
    OrCondition,
    RangeCondition,
)
from app.schemas.lead import LeadSnapshot


def _norm(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


def _candidates(value: Any) -> Tuple[Any, ...]:
    """Multi-valued attributes (program interest) match on any element."""
    if isinstance(value, (tuple, list, set, frozenset)):
        return tuple(_norm(v) for v in value)
    return (_norm(value),)


def _format_value(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def describe(condition: Condition) -> str:
    """Human-readable form of a node, used in matched-condition trails."""
    if isinstance(condition, EqualsCondition):
        return f"{condition.field} = {_format_value(condition.value)}"
    if isinstance(condition, InSetCondition):
        values = ", ".join(_format_value(v) for v in condition.values)
        return f"{condition.field} in [{values}]"
    if isinstance(condition, RangeCondition):
        parts = []
        if condition.min is not None:
            parts.append(f">= {_format_value(condition.min)}")
        if condition.max is not None:
            parts.append(f"<= {_format_value(condition.max)}")
        return f"{condition.field} " + " and ".join(parts)
    if isinstance(condition, AndCondition):
        return "(" + " AND ".join(describe(c) for c in condition.conditions) + ")"
    if isinstance(condition, OrCondition):
        return "(" + " OR ".join(describe(c) for c in condition.conditions) + ")"
    if isinstance(condition, NotCondition):
        return f"NOT {describe(condition.condition)}"
    raise TypeError(f"Unsupported condition node {type(condition).__name__}")


def _in_range(value: Any, condition: RangeCondition) -> bool:
    if value is None or isinstance(value, bool):
        return False
    try:
        number = float(value)
    except (TypeError, ValueError):
        return False
    if condition.min is not None and number < condition.min:
        return False
    if condition.max is not None and number > condition.max:
        return False
    return True


def evaluate(
    condition: Optional[Condition], lead: LeadSnapshot
) -> Tuple[bool, List[str]]:
    """Evaluate *condition* against *lead*.

    Returns ``(matched, trail)`` where *trail* lists the leaf predicates
    that contributed to the match.  ``None`` (catch-all) always matches
    with an empty trail.  AND/OR short-circuit left to right.
    """
    if condition is None:
        return True, []

    if isinstance(condition, EqualsCondition):
        target = _norm(condition.value)
        matched = target in _candidates(lead.value_of(condition.field))
        return matched, [describe(condition)] if matched else []

    if isinstance(condition, InSetCondition):
        allowed = {_norm(v) for v in condition.values}
        matched = any(v in allowed for v in _candidates(lead.value_of(condition.field)))
        return matched, [describe(condition)] if matched else []

    if isinstance(condition, RangeCondition):
        value = lead.value_of(condition.field)
        values = value if isinstance(value, (tuple, list)) else (value,)
        matched = any(_in_range(v, condition) for v in values)
        return matched, [describe(condition)] if matched else []

    if isinstance(condition, AndCondition):
        trail: List[str] = []
        for child in condition.conditions:
            matched, child_trail = evaluate(child, lead)
            if not matched:
                return False, []
            trail.extend(child_trail)
        return True, trail

    if isinstance(condition, OrCondition):
        for child in condition.conditions:
            matched, child_trail = evaluate(child, lead)
            if matched:
                return True, child_trail
        return False, []

    if isinstance(condition, NotCondition):
        matched, _ = evaluate(condition.condition, lead)
        if matched:
            return False, []
        return True, [describe(condition)]

    raise TypeError(f"Unsupported condition node {type(condition).__name__}")


def matches(condition: Optional[Condition], lead: LeadSnapshot) -> bool:
    return evaluate(condition, lead)[0]
