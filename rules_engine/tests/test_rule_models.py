"""
Unit tests for rule models.
"""

import json

import pytest
from pydantic import ValidationError

from rules_engine.app.rules.models import Condition, ConditionGroup, Event, Rule
from shared.errors import ConditionError
from shared.test_helpers import create_rule_definition


class TestRuleModels:
    """Test cases for rule definitions."""

    def test_rule_from_definition(self):
        rule = Rule.model_validate(create_rule_definition())

        assert rule.id == "user-eligibility"
        assert rule.priority == 1
        assert rule.conditions.boolean_operator == "all"
        assert len(rule.conditions.conditions) == 3
        assert all(isinstance(c, Condition) for c in rule.conditions.conditions)
        assert rule.event.params == {"discount": 10}

    def test_defaults(self):
        rule = Rule(
            id="r",
            conditions=ConditionGroup(),
            event=Event(type="noop"),
        )

        assert rule.priority == 1
        assert rule.name is None
        assert rule.conditions.boolean_operator == "all"
        assert rule.conditions.conditions == []
        assert rule.event.params == {}

    def test_nested_groups(self):
        """Test that nested groups validate as ConditionGroup, not Condition."""
        rule = Rule.model_validate({
            "id": "nested",
            "conditions": {
                "boolean_operator": "any",
                "conditions": [
                    {"fact": "region", "operator": "equal", "value": "EU"},
                    {
                        "boolean_operator": "all",
                        "conditions": [
                            {"fact": "score", "operator": "greaterThan", "value": 5},
                            {"fact": "tier", "operator": "in", "value": ["gold", "silver"]},
                        ],
                    },
                ],
            },
            "event": {"type": "approved"},
        })

        first, second = rule.conditions.conditions
        assert isinstance(first, Condition)
        assert isinstance(second, ConditionGroup)
        assert second.conditions[1].value == ["gold", "silver"]

    def test_json_round_trip(self):
        rule = Rule.model_validate(create_rule_definition(priority=3))

        restored = Rule.from_json(rule.to_json())

        assert restored == rule
        assert json.loads(rule.to_json())["priority"] == 3

    def test_invalid_json_raises_condition_error(self):
        with pytest.raises(ConditionError) as exc_info:
            Rule.from_json("{not json")

        assert exc_info.value.code == "CONDITION_ERROR"
        assert exc_info.value.details["error_count"] >= 1

    def test_missing_event_raises_condition_error(self):
        definition = create_rule_definition()
        del definition["event"]

        with pytest.raises(ConditionError):
            Rule.from_json(json.dumps(definition))

    def test_unknown_boolean_operator_rejected(self):
        with pytest.raises(ValidationError):
            ConditionGroup(boolean_operator="xor", conditions=[])

    def test_extra_condition_fields_rejected(self):
        with pytest.raises(ValidationError):
            Condition(fact="user", operator="equal", value=1, comparator="strict")

    def test_empty_fact_rejected(self):
        with pytest.raises(ValidationError):
            Condition(fact="", operator="equal", value=1)

    def test_condition_params(self):
        condition = Condition(fact="quote", operator="greaterThan", value=80, params={"symbol": "BRN"})

        assert condition.params == {"symbol": "BRN"}
        assert condition.path is None
