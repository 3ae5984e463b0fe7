"""Tests for ordered, first-match-wins routing rule evaluation."""

import logging
from uuid import UUID

import pytest

from app.core.exceptions import InvalidRuleConfigError
from app.schemas.common import AssignmentPolicy
from app.services.rule_evaluator import RuleEvaluator, load_rule
from tests.fakes import make_lead, make_rule_row

RULE_A = UUID("00000000-0000-0000-0000-00000000000a")
RULE_B = UUID("00000000-0000-0000-0000-00000000000b")


class TestLoadRule:
    """Stored rows are compiled once; malformed rows fail loudly."""

    def test_load_rule_from_row(self):
        rule = load_rule(
            make_rule_row(
                conditions={"program": "MBA"},
                assignment_config={"method": "round_robin", "workload_balance": True},
            )
        )
        assert rule.assignment_config.method is AssignmentPolicy.round_robin
        assert not rule.is_catch_all

    def test_load_rule_from_mapping(self):
        rule = load_rule(
            {
                "rule_id": RULE_A,
                "name": "Direct",
                "priority": 3,
                "is_active": True,
                "conditions": {},
                "assignment_config": {
                    "policy": "direct",
                    "advisor_id": "00000000-0000-0000-0000-000000000001",
                },
            }
        )
        assert rule.assignment_config.method is AssignmentPolicy.direct
        assert rule.is_catch_all

    def test_unknown_policy_is_rejected(self):
        with pytest.raises(InvalidRuleConfigError):
            load_rule(make_rule_row(assignment_config={"method": "lottery"}))

    def test_direct_without_target_is_rejected(self):
        with pytest.raises(InvalidRuleConfigError):
            load_rule(make_rule_row(assignment_config={"method": "direct"}))

    def test_malformed_conditions_are_rejected(self):
        with pytest.raises(InvalidRuleConfigError):
            load_rule(make_rule_row(conditions={"op": "between", "field": "score"}))

    def test_from_rows_fails_fast(self):
        rows = [make_rule_row(), make_rule_row(assignment_config={})]
        with pytest.raises(InvalidRuleConfigError):
            RuleEvaluator.from_rows(rows)


class TestRuleEvaluator:
    """Priority ordering, tie-breaks and catch-all handling."""

    def test_higher_priority_specific_rule_wins(self):
        evaluator = RuleEvaluator.from_rows(
            [
                make_rule_row(name="Fallback", priority=5, conditions={}),
                make_rule_row(
                    name="MBA",
                    priority=10,
                    conditions={"program": "MBA"},
                    assignment_config={"method": "workload_based"},
                ),
            ]
        )
        match = evaluator.evaluate(make_lead(program_interest=["MBA"]))
        assert match.rule.name == "MBA"
        assert match.matched_conditions == ["program = MBA"]

    def test_falls_through_to_catch_all(self):
        evaluator = RuleEvaluator.from_rows(
            [
                make_rule_row(name="Fallback", priority=5, conditions={}),
                make_rule_row(name="MBA", priority=10, conditions={"program": "MBA"}),
            ]
        )
        match = evaluator.evaluate(make_lead(program_interest=["Law"]))
        assert match.rule.name == "Fallback"
        assert match.matched_conditions == []

    def test_equal_priority_ties_break_on_rule_id(self):
        rows = [
            make_rule_row(rule_id=RULE_B, name="B", priority=5),
            make_rule_row(rule_id=RULE_A, name="A", priority=5),
        ]
        for ordering in (rows, list(reversed(rows))):
            match = RuleEvaluator.from_rows(ordering).evaluate(make_lead())
            assert match.rule.rule_id == RULE_A

    def test_no_match_returns_none(self):
        evaluator = RuleEvaluator.from_rows(
            [make_rule_row(conditions={"country": ["US"]})]
        )
        assert evaluator.evaluate(make_lead(country="UK")) is None

    def test_inactive_rules_are_ignored(self):
        evaluator = RuleEvaluator.from_rows([make_rule_row(is_active=False)])
        assert evaluator.rules == []
        assert evaluator.evaluate(make_lead()) is None

    def test_shadowing_catch_all_is_flagged(self, caplog):
        with caplog.at_level(logging.WARNING):
            evaluator = RuleEvaluator.from_rows(
                [
                    make_rule_row(name="Everything", priority=10, conditions={}),
                    make_rule_row(name="MBA", priority=5, conditions={"program": "MBA"}),
                ]
            )
        assert len(evaluator.warnings) == 1
        assert "Everything" in evaluator.warnings[0]
        assert "shadows" in caplog.text

    def test_lowest_priority_catch_all_is_not_flagged(self):
        evaluator = RuleEvaluator.from_rows(
            [
                make_rule_row(name="MBA", priority=10, conditions={"program": "MBA"}),
                make_rule_row(name="Fallback", priority=1, conditions={}),
            ]
        )
        assert evaluator.warnings == []

    def test_evaluate_all_lists_every_match_in_order(self):
        evaluator = RuleEvaluator.from_rows(
            [
                make_rule_row(name="Fallback", priority=1),
                make_rule_row(name="MBA", priority=10, conditions={"program": "MBA"}),
                make_rule_row(name="Law", priority=8, conditions={"program": "Law"}),
            ]
        )
        names = [m.rule.name for m in evaluator.evaluate_all(make_lead())]
        assert names == ["MBA", "Fallback"]

    def test_evaluation_is_deterministic(self):
        rows = [make_rule_row(priority=p) for p in (3, 7, 7, 1)]
        lead = make_lead()
        winners = {RuleEvaluator.from_rows(rows).evaluate(lead).rule.rule_id for _ in range(5)}
        assert len(winners) == 1
