"""Condition evaluation for Condition and Filter steps.

A condition compares the value found at a dot path in the data context
with a literal string. Conditions are grouped and combined with AND/OR.
Evaluation never raises: values that cannot be compared simply do not
match.
"""

import math
import re
from typing import Any, Mapping, Optional

import structlog

from core.constants import ConditionOperator, LogicalOperator
from workflow.models import Condition, ConditionGroup
from workflow.resolver import UNDEFINED, resolve_path, stringify

logger = structlog.get_logger(__name__)

_NUMBER_PREFIX = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def parse_number(value: Any) -> Optional[float]:
    """Parse the leading number of a value, ``None`` when there is none.

    Mirrors the permissive parsing of form inputs: ``"12px"`` is 12,
    ``"abc"`` is not a number.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else float(value)

    text = stringify(value).strip()
    if text.startswith(("Infinity", "+Infinity")):
        return math.inf
    if text.startswith("-Infinity"):
        return -math.inf

    match = _NUMBER_PREFIX.match(text)
    if not match:
        return None
    return float(match.group(0))


def _is_blank(value: Any) -> bool:
    return value is UNDEFINED or value is None or value == ""


def evaluate_condition(condition: Condition, context: Mapping[str, Any]) -> bool:
    """Evaluate a single condition against the data context."""
    actual = resolve_path(context, condition.variable)
    expected = condition.value
    operator = condition.operator

    if operator == ConditionOperator.IS_EMPTY:
        return _is_blank(actual)
    if operator == ConditionOperator.IS_NOT_EMPTY:
        return not _is_blank(actual)

    # Nothing to compare against
    if actual is UNDEFINED or actual is None:
        return False

    if operator in (ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN):
        actual_number = parse_number(actual)
        expected_number = parse_number(expected)
        if actual_number is None or expected_number is None:
            return False
        if operator == ConditionOperator.GREATER_THAN:
            return actual_number > expected_number
        return actual_number < expected_number

    actual_text = stringify(actual)

    if operator == ConditionOperator.EQUALS:
        return actual_text == expected
    if operator == ConditionOperator.NOT_EQUALS:
        return actual_text != expected
    if operator == ConditionOperator.CONTAINS:
        return expected in actual_text
    if operator == ConditionOperator.NOT_CONTAINS:
        return expected not in actual_text
    if operator == ConditionOperator.STARTS_WITH:
        return actual_text.startswith(expected)
    if operator == ConditionOperator.ENDS_WITH:
        return actual_text.endswith(expected)

    logger.warning("Unknown condition operator", operator=str(operator), variable=condition.variable)
    return False


def evaluate_group(group: ConditionGroup, context: Mapping[str, Any]) -> bool:
    """Evaluate a condition group. An empty group always matches."""
    if not group.conditions:
        return True

    results = [evaluate_condition(c, context) for c in group.conditions]
    if group.logical_operator == LogicalOperator.AND:
        return all(results)
    return any(results)
