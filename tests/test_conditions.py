"""Tests for routing condition parsing and evaluation."""

import pytest

from app.core.exceptions import InvalidRuleConfigError
from app.schemas.conditions import (
    AndCondition,
    EqualsCondition,
    dump_conditions,
    parse_conditions,
)
from app.services.conditions import describe, evaluate, matches
from tests.fakes import make_lead


class TestParseConditions:
    """Stored condition documents become typed predicate trees."""

    def test_empty_document_is_catch_all(self):
        assert parse_conditions({}) is None
        assert parse_conditions(None) is None

    def test_single_shorthand_key_becomes_equals(self):
        condition = parse_conditions({"program": "MBA"})
        assert isinstance(condition, EqualsCondition)
        assert condition.field == "program"

    def test_multiple_shorthand_keys_become_and(self):
        condition = parse_conditions(
            {"program": "MBA", "country": ["US", "CA"], "score": {"min": 60}}
        )
        assert isinstance(condition, AndCondition)
        assert [c.op for c in condition.conditions] == ["equals", "in_set", "range"]

    def test_unknown_field_is_rejected(self):
        with pytest.raises(InvalidRuleConfigError):
            parse_conditions({"op": "equals", "field": "shoe_size", "value": 42})

    def test_unknown_operator_is_rejected(self):
        with pytest.raises(InvalidRuleConfigError):
            parse_conditions({"op": "xor", "conditions": []})

    def test_empty_group_is_rejected(self):
        with pytest.raises(InvalidRuleConfigError):
            parse_conditions({"op": "and", "conditions": []})

    def test_inverted_range_is_rejected(self):
        with pytest.raises(InvalidRuleConfigError):
            parse_conditions({"score": {"min": 90, "max": 10}})

    def test_non_object_is_rejected(self):
        with pytest.raises(InvalidRuleConfigError):
            parse_conditions("program = MBA")

    def test_dump_is_canonical(self):
        dumped = dump_conditions(parse_conditions({"program": "MBA"}))
        assert dumped == {"op": "equals", "field": "program", "value": "MBA"}
        assert parse_conditions(dumped) == parse_conditions({"program": "MBA"})


class TestEvaluate:
    """Condition evaluation against lead snapshots."""

    def test_catch_all_matches_with_empty_trail(self):
        assert evaluate(None, make_lead()) == (True, [])

    def test_equals_is_case_insensitive_on_any_program(self):
        lead = make_lead(program_interest=["Computer Science", "mba"])
        matched, trail = evaluate(parse_conditions({"program": "MBA"}), lead)
        assert matched is True
        assert trail == ["program = MBA"]

    def test_in_set(self):
        condition = parse_conditions({"country": ["US", "CA"]})
        assert matches(condition, make_lead(country="ca"))
        assert not matches(condition, make_lead(country="UK"))

    def test_range_is_inclusive(self):
        condition = parse_conditions({"score": {"min": 60, "max": 80}})
        assert matches(condition, make_lead(lead_score=60))
        assert matches(condition, make_lead(lead_score=80))
        assert not matches(condition, make_lead(lead_score=81))

    def test_range_never_matches_missing_values(self):
        condition = parse_conditions({"country": {"min": 1}})
        assert not matches(condition, make_lead(country=None))

    def test_and_collects_every_leaf(self):
        condition = parse_conditions({"program": "MBA", "score": {"min": 60}})
        matched, trail = evaluate(condition, make_lead(lead_score=70))
        assert matched
        assert trail == ["program = MBA", "score >= 60"]

    def test_and_fails_on_any_leaf(self):
        condition = parse_conditions({"program": "MBA", "score": {"min": 60}})
        assert evaluate(condition, make_lead(lead_score=10)) == (False, [])

    def test_or_reports_first_matching_branch(self):
        condition = parse_conditions(
            {
                "op": "or",
                "conditions": [
                    {"op": "equals", "field": "source", "value": "event"},
                    {"op": "equals", "field": "country", "value": "US"},
                ],
            }
        )
        matched, trail = evaluate(condition, make_lead(source="web", country="US"))
        assert matched
        assert trail == ["country = US"]

    def test_not_records_negated_predicate(self):
        condition = parse_conditions(
            {
                "op": "not",
                "condition": {
                    "op": "in_set",
                    "field": "source",
                    "values": ["csv_import", "api_import"],
                },
            }
        )
        matched, trail = evaluate(condition, make_lead(source="web"))
        assert matched
        assert trail == ["NOT source in [csv_import, api_import]"]
        assert not matches(condition, make_lead(source="csv_import"))

    def test_describe_range_with_both_bounds(self):
        condition = parse_conditions({"score": {"min": 60, "max": 90}})
        assert describe(condition) == "score >= 60 and <= 90"
