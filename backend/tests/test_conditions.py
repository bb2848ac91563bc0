"""Tests for condition and condition-group evaluation."""

import math

import pytest

from core.constants import LogicalOperator
from workflow.conditions import evaluate_condition, evaluate_group, parse_number
from workflow.models import Condition, ConditionGroup


CONTEXT = {
    "trigger": {
        "email": "ada@example.com",
        "count": 5,
        "amount": "120.50",
        "blank": "",
        "nothing": None,
        "active": True,
    },
}


def cond(variable, operator, value=""):
    return Condition(variable=variable, operator=operator, value=value)


@pytest.mark.unit
class TestParseNumber:

    @pytest.mark.parametrize("raw,expected", [
        ("12px", 12.0),
        ("3.5", 3.5),
        (".5", 0.5),
        ("-4", -4.0),
        ("1e3", 1000.0),
        (7, 7.0),
    ])
    def test_numbers(self, raw, expected):
        assert parse_number(raw) == expected

    @pytest.mark.parametrize("raw", ["abc", "", True, None])
    def test_not_numbers(self, raw):
        assert parse_number(raw) is None

    def test_infinity(self):
        assert parse_number("-Infinity") == -math.inf


@pytest.mark.unit
class TestEvaluateCondition:

    def test_equals_compares_string_form(self):
        assert evaluate_condition(cond("trigger.count", "equals", "5"), CONTEXT)

    def test_equals_boolean(self):
        assert evaluate_condition(cond("trigger.active", "equals", "true"), CONTEXT)

    def test_not_equals(self):
        assert evaluate_condition(cond("trigger.email", "not_equals", "bob@example.com"), CONTEXT)

    def test_contains(self):
        assert evaluate_condition(cond("trigger.email", "contains", "@example"), CONTEXT)

    def test_not_contains(self):
        assert evaluate_condition(cond("trigger.email", "not_contains", "gmail"), CONTEXT)

    def test_starts_and_ends_with(self):
        assert evaluate_condition(cond("trigger.email", "starts_with", "ada"), CONTEXT)
        assert evaluate_condition(cond("trigger.email", "ends_with", ".com"), CONTEXT)

    def test_missing_value_never_matches_comparisons(self):
        assert not evaluate_condition(cond("trigger.missing", "not_contains", "x"), CONTEXT)
        assert not evaluate_condition(cond("trigger.missing", "not_equals", "x"), CONTEXT)

    @pytest.mark.parametrize("variable", ["trigger.missing", "trigger.blank", "trigger.nothing"])
    def test_is_empty(self, variable):
        assert evaluate_condition(cond(variable, "is_empty"), CONTEXT)
        assert not evaluate_condition(cond(variable, "is_not_empty"), CONTEXT)

    def test_is_not_empty(self):
        assert evaluate_condition(cond("trigger.email", "is_not_empty"), CONTEXT)

    def test_greater_than_is_numeric(self):
        assert evaluate_condition(cond("trigger.amount", "greater_than", "99"), CONTEXT)
        assert not evaluate_condition(cond("trigger.amount", "less_than", "99"), CONTEXT)

    def test_greater_than_non_numeric(self):
        assert not evaluate_condition(cond("trigger.email", "greater_than", "1"), CONTEXT)

    def test_unknown_operator_is_false(self):
        assert not evaluate_condition(cond("trigger.email", "matches_regex", ".*"), CONTEXT)

    def test_value_coerced_to_string(self):
        condition = Condition(variable="trigger.count", operator="equals", value=5)
        assert condition.value == "5"
        assert evaluate_condition(condition, CONTEXT)


@pytest.mark.unit
class TestEvaluateGroup:

    def test_empty_group_matches(self):
        assert evaluate_group(ConditionGroup(), CONTEXT)

    def test_and(self):
        group = ConditionGroup(conditions=[
            cond("trigger.email", "contains", "ada"),
            cond("trigger.count", "greater_than", "10"),
        ])
        assert not evaluate_group(group, CONTEXT)

    def test_or(self):
        group = ConditionGroup(
            conditions=[
                cond("trigger.email", "contains", "ada"),
                cond("trigger.count", "greater_than", "10"),
            ],
            logical_operator=LogicalOperator.OR,
        )
        assert evaluate_group(group, CONTEXT)

    def test_alias_fields(self):
        group = ConditionGroup.model_validate({
            "conditions": [{"id": "c1", "variable": "trigger.count", "operator": "less_than", "value": "6"}],
            "logicalOperator": "OR",
        })
        assert group.logical_operator == LogicalOperator.OR
        assert evaluate_group(group, CONTEXT)
