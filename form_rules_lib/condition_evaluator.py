"""
Condition Evaluator - runs one rule's predicate in isolation.

A predicate that raises is a defect in that rule, not a failed check. The
evaluator logs it and reports None so the calling engine leaves the rule out
of every bucket for the pass. One malformed custom rule can therefore never
block a form.
"""

import logging
import math
import re
from collections.abc import Mapping
from typing import Any, Callable, Optional

from .models import Condition, EvaluationContext, Rule

logger = logging.getLogger(__name__)

_COLLECTION_TYPES = (list, tuple, set, frozenset)


def _to_number(value: Any) -> float:
    # Non-numeric operands become NaN so every comparison is false
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def _contains(haystack: Any, needle: Any) -> bool:
    if isinstance(haystack, _COLLECTION_TYPES) or isinstance(haystack, dict):
        return needle in haystack
    return str(needle) in str(haystack)


def _regex(operand: Any, pattern: Any) -> bool:
    if isinstance(pattern, str):
        return re.search(pattern, str(operand)) is not None
    if isinstance(pattern, re.Pattern):
        return pattern.search(str(operand)) is not None
    return False


def _custom(operand: Any, condition: Condition, context: Any) -> bool:
    if condition.fn is None:
        return False
    return bool(condition.fn(operand, context))


_OPERATIONS = {
    "equals": lambda operand, cond, ctx: operand == cond.value,
    "not_equals": lambda operand, cond, ctx: operand != cond.value,
    "contains": lambda operand, cond, ctx: _contains(operand, cond.value),
    "not_contains": lambda operand, cond, ctx: not _contains(operand, cond.value),
    "greater_than": lambda operand, cond, ctx: _to_number(operand) > _to_number(cond.value),
    "less_than": lambda operand, cond, ctx: _to_number(operand) < _to_number(cond.value),
    "in": lambda operand, cond, ctx: (
        isinstance(cond.value, _COLLECTION_TYPES) and operand in cond.value
    ),
    "not_in": lambda operand, cond, ctx: (
        isinstance(cond.value, _COLLECTION_TYPES) and operand not in cond.value
    ),
    "regex": lambda operand, cond, ctx: _regex(operand, cond.value),
    "custom": _custom,
}


class ConditionEvaluator:
    """Evaluates rule conditions against a value and an evaluation context."""

    def evaluate(
        self,
        rule: Rule,
        value: Any,
        context: Optional[EvaluationContext],
        on_error: Optional[Callable[[Rule, Exception], None]] = None,
    ) -> Optional[bool]:
        """
        Evaluate a rule's condition.

        Args:
            rule: Rule whose condition is checked
            value: Value under evaluation (the field-value map for cross-field rules)
            context: Evaluation context passed to predicates
            on_error: Called with (rule, exception) when the predicate raises

        Returns:
            True if the invariant holds, False if it is violated,
            None if the predicate raised
        """
        try:
            return self.check(rule.condition, value, context)
        except Exception as e:
            logger.warning(
                f"Condition of rule {rule.id} raised {type(e).__name__}: {e}",
                extra={"rule_id": rule.id},
                exc_info=True,
            )
            if on_error is not None:
                on_error(rule, e)
            return None

    def check(self, condition: Any, value: Any, context: Optional[EvaluationContext]) -> bool:
        """
        Check a condition without exception isolation.

        A sequence of conditions holds only when every member holds.
        """
        if condition is None:
            return True
        if isinstance(condition, Condition):
            operand = self.resolve_operand(condition, value, context)
            return bool(_OPERATIONS[condition.operator](operand, condition, context))
        if callable(condition):
            return bool(condition(value, context))
        return all(self.check(member, value, context) for member in condition)

    @staticmethod
    def resolve_operand(
        condition: Condition, value: Any, context: Optional[EvaluationContext]
    ) -> Any:
        """
        Pick the value a condition compares.

        Without a field the evaluated value is used. A field is looked up in
        the evaluated value when that is a mapping (cross-field rules receive
        the whole field map); otherwise it names either the field under
        evaluation or another entry of the context's form data.
        """
        if condition.field is None:
            return value
        if isinstance(value, Mapping) and condition.field in value:
            return value[condition.field]
        if context is None or condition.field == context.field_name:
            return value
        if condition.field in context.form_data:
            return context.form_data[condition.field]
        return value
