"""Condition evaluation for rules and action guards.

A condition is one of:

- ``None``: always true.
- An expression string, evaluated by ExpressionEvaluator.
- A comparison mapping ``{"field": "data.likes", "operator": "greater_than", "value": 10}``.
- A group mapping ``{"all": [...]}``, ``{"any": [...]}`` or ``{"not": condition}``.
- A mapping ``{"expression": "..."}`` wrapping an expression string.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Any, Optional

from .context import EvaluationContext
from .expression import ExpressionError, ExpressionEvaluator, check_syntax


logger = logging.getLogger(__name__)


class ConditionError(Exception):
    """Raised when a condition is malformed or cannot be evaluated."""

    pass


class ConditionOperator(str, Enum):
    """Comparison operators for structured conditions."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    GREATER_THAN = "greater_than"
    GREATER_OR_EQUAL = "greater_or_equal"
    LESS_THAN = "less_than"
    LESS_OR_EQUAL = "less_or_equal"
    REGEX_MATCH = "regex_match"
    IN = "in"
    EXISTS = "exists"


GROUP_KEYS = ("all", "any", "not")

_MISSING = object()


def resolve_field(path: str, namespace: dict[str, Any]) -> Any:
    """Resolve a dotted path (``data.user.name``, ``results.0``) in a namespace.

    Returns the module-level ``_MISSING`` sentinel when any segment is absent.
    """
    current: Any = namespace
    for segment in path.split("."):
        if isinstance(current, dict) or hasattr(current, "keys"):
            if segment in current:
                current = current[segment]
                continue
            return _MISSING
        if isinstance(current, (list, tuple)):
            try:
                current = current[int(segment)]
                continue
            except (ValueError, IndexError):
                return _MISSING
        if hasattr(current, segment) and not segment.startswith("_"):
            current = getattr(current, segment)
            continue
        return _MISSING
    return current


def validate_condition(condition: Any) -> list[str]:
    """Check a condition's shape without evaluating it.

    Returns:
        List of validation error messages (empty if valid).
    """
    errors: list[str] = []

    if condition is None:
        return errors

    if isinstance(condition, str):
        try:
            check_syntax(condition)
        except ExpressionError as e:
            errors.append(str(e))
        return errors

    if not isinstance(condition, dict):
        return [f"Condition must be a string or mapping, got {type(condition).__name__}"]

    if "expression" in condition:
        return validate_condition(str(condition["expression"]))

    group = [key for key in GROUP_KEYS if key in condition]
    if group:
        key = group[0]
        children = condition[key]
        if key == "not":
            return validate_condition(children)
        if not isinstance(children, list) or not children:
            return [f"'{key}' group must be a non-empty list"]
        for child in children:
            errors.extend(validate_condition(child))
        return errors

    if "field" not in condition:
        errors.append("Structured condition requires a 'field'")
    operator = condition.get("operator", ConditionOperator.EQUALS.value)
    try:
        op = ConditionOperator(operator)
    except ValueError:
        errors.append(f"Unknown condition operator: {operator}")
        return errors
    if op != ConditionOperator.EXISTS and "value" not in condition:
        errors.append(f"Operator '{op.value}' requires a 'value'")
    if op == ConditionOperator.REGEX_MATCH and isinstance(condition.get("value"), str):
        try:
            re.compile(condition["value"])
        except re.error as e:
            errors.append(f"Invalid regex '{condition['value']}': {e}")
    return errors


class ConditionEvaluator:
    """Evaluates rule conditions of any supported shape."""

    def __init__(self, expressions: Optional[ExpressionEvaluator] = None) -> None:
        self._expressions = expressions or ExpressionEvaluator()

    @property
    def expressions(self) -> ExpressionEvaluator:
        return self._expressions

    def evaluate(self, condition: Any, context: EvaluationContext) -> bool:
        """Evaluate a condition against the dispatch context.

        Raises:
            ConditionError: If the condition is malformed.
            ExpressionError: If an expression fails to evaluate.
        """
        if condition is None:
            return True
        if isinstance(condition, str):
            return self._expressions.evaluate(condition, context)
        if not isinstance(condition, dict):
            raise ConditionError(f"Condition must be a string or mapping, got {type(condition).__name__}")
        return self._evaluate_mapping(condition, context, context.names())

    def _evaluate_mapping(
        self,
        condition: dict[str, Any],
        context: EvaluationContext,
        namespace: dict[str, Any],
    ) -> bool:
        if "expression" in condition:
            return self._expressions.evaluate(str(condition["expression"]), context)

        if "all" in condition:
            return all(self._evaluate_child(c, context, namespace) for c in self._children(condition, "all"))
        if "any" in condition:
            return any(self._evaluate_child(c, context, namespace) for c in self._children(condition, "any"))
        if "not" in condition:
            return not self._evaluate_child(condition["not"], context, namespace)

        return self._compare(condition, namespace)

    def _evaluate_child(self, child: Any, context: EvaluationContext, namespace: dict[str, Any]) -> bool:
        if child is None:
            return True
        if isinstance(child, str):
            return self._expressions.evaluate(child, context)
        if isinstance(child, dict):
            return self._evaluate_mapping(child, context, namespace)
        raise ConditionError(f"Invalid condition entry: {child!r}")

    @staticmethod
    def _children(condition: dict[str, Any], key: str) -> list[Any]:
        children = condition[key]
        if not isinstance(children, list):
            raise ConditionError(f"'{key}' group must be a list")
        return children

    def _compare(self, condition: dict[str, Any], namespace: dict[str, Any]) -> bool:
        field_path = condition.get("field")
        if not field_path:
            raise ConditionError("Structured condition requires a 'field'")

        try:
            op = ConditionOperator(condition.get("operator", ConditionOperator.EQUALS.value))
        except ValueError as e:
            raise ConditionError(f"Unknown condition operator: {condition.get('operator')}") from e

        actual = resolve_field(str(field_path), namespace)
        expected = condition.get("value")

        if op == ConditionOperator.EXISTS:
            present = actual is not _MISSING and actual is not None
            return present if expected is None else present == bool(expected)

        if actual is _MISSING:
            return False

        try:
            if op == ConditionOperator.EQUALS:
                return actual == expected
            if op == ConditionOperator.NOT_EQUALS:
                return actual != expected
            if op == ConditionOperator.CONTAINS:
                return self._contains(actual, expected)
            if op == ConditionOperator.NOT_CONTAINS:
                return not self._contains(actual, expected)
            if op == ConditionOperator.STARTS_WITH:
                return str(actual).startswith(str(expected))
            if op == ConditionOperator.ENDS_WITH:
                return str(actual).endswith(str(expected))
            if op == ConditionOperator.GREATER_THAN:
                return float(actual) > float(expected)
            if op == ConditionOperator.GREATER_OR_EQUAL:
                return float(actual) >= float(expected)
            if op == ConditionOperator.LESS_THAN:
                return float(actual) < float(expected)
            if op == ConditionOperator.LESS_OR_EQUAL:
                return float(actual) <= float(expected)
            if op == ConditionOperator.REGEX_MATCH:
                return re.search(str(expected), str(actual)) is not None
            if op == ConditionOperator.IN:
                return actual in expected
        except (TypeError, ValueError) as e:
            raise ConditionError(f"Cannot apply '{op.value}' to {field_path}={actual!r}: {e}") from e
        except re.error as e:
            raise ConditionError(f"Invalid regex '{expected}': {e}") from e

        raise ConditionError(f"Unhandled operator: {op.value}")

    @staticmethod
    def _contains(actual: Any, expected: Any) -> bool:
        if isinstance(actual, str):
            return str(expected).lower() in actual.lower()
        return expected in actual
