import logging
from typing import Any, Iterable, List, Optional, Sequence

from pydantic import ValidationError

from app.core.exceptions import InvalidRuleConfigError
from app.schemas.conditions import parse_conditions
from app.schemas.lead import LeadSnapshot
from app.schemas.routing import AssignmentConfig, MatchResult, RoutingRuleDefinition
from app.services.conditions import evaluate

logger = logging.getLogger(__name__)


def load_rule(row: Any) -> RoutingRuleDefinition:
    """Compile a stored routing rule (ORM row or mapping) into a definition.

    Raises ``InvalidRuleConfigError`` for malformed conditions or
    assignment configuration; a rule is never accepted half-parsed.
    """
    get = row.get if isinstance(row, dict) else lambda k: getattr(row, k, None)
    rule_id = get("rule_id")
    try:
        condition = parse_conditions(get("conditions"))
    except InvalidRuleConfigError as exc:
        raise InvalidRuleConfigError(f"Rule {rule_id}: {exc.detail}") from exc
    try:
        config = AssignmentConfig.model_validate(get("assignment_config") or {})
        return RoutingRuleDefinition(
            rule_id=rule_id,
            name=get("name") or "",
            priority=get("priority") or 0,
            is_active=bool(get("is_active")),
            condition=condition,
            assignment_config=config,
        )
    except ValidationError as exc:
        raise InvalidRuleConfigError(
            f"Rule {rule_id}: invalid assignment configuration: {exc}"
        ) from exc


class RuleEvaluator:
    """Ordered, first-match-wins evaluation of routing rules.

    Active rules are ordered by priority descending with ``rule_id``
    ascending as the tie-break, so the outcome for a given rule set and
    lead is deterministic.  Evaluation is a pure function of the rule
    set and the snapshot; no I/O happens here.
    """

    def __init__(self, rules: Iterable[RoutingRuleDefinition]) -> None:
        active = [r for r in rules if r.is_active]
        self._rules: List[RoutingRuleDefinition] = sorted(
            active, key=lambda r: (-r.priority, str(r.rule_id))
        )
        self.warnings: List[str] = self._check_catch_alls()
        for warning in self.warnings:
            logger.warning(warning)

    @classmethod
    def from_rows(cls, rows: Sequence[Any]) -> "RuleEvaluator":
        """Compile every row, failing fast on the first malformed rule."""
        return cls(load_rule(row) for row in rows)

    @property
    def rules(self) -> List[RoutingRuleDefinition]:
        return list(self._rules)

    def _check_catch_alls(self) -> List[str]:
        """Flag catch-all rules that shadow lower-priority rules."""
        if not self._rules:
            return []
        lowest = self._rules[-1].priority
        return [
            f"Catch-all rule '{r.name}' ({r.rule_id}) at priority {r.priority} "
            "shadows every lower-priority rule"
            for r in self._rules
            if r.is_catch_all and r.priority > lowest
        ]

    def evaluate(self, lead: LeadSnapshot) -> Optional[MatchResult]:
        """Return the first matching rule, or ``None`` for manual routing."""
        for rule in self._rules:
            matched, trail = evaluate(rule.condition, lead)
            if matched:
                return MatchResult(rule=rule, matched_conditions=trail)
        return None

    def evaluate_all(self, lead: LeadSnapshot) -> List[MatchResult]:
        """Every matching rule in evaluation order; for previews only."""
        results: List[MatchResult] = []
        for rule in self._rules:
            matched, trail = evaluate(rule.condition, lead)
            if matched:
                results.append(MatchResult(rule=rule, matched_conditions=trail))
        return results
