"""
Business rule engine.

A business rule's condition is the invariant the form data should satisfy;
when it is violated the rule fires and its actions run. A rule is only
considered once every field it references is available, either as the field
under evaluation or as a non-empty entry of the form data.
"""

import logging
import time
from types import MappingProxyType
from typing import Any, Callable, Iterable, List, Optional

from .base_engine import BaseRuleEngine
from .default_rules import default_business_rules
from .models import BusinessRuleResult, Condition, EvaluationContext, Rule, Severity
from .rule_executor import ActionExecutor, ActionOutputs

logger = logging.getLogger(__name__)


def referenced_fields(rule: Rule) -> List[str]:
    """Fields a business rule reads: its `fields` plus each Condition's field."""
    names = list(rule.fields)
    members = rule.condition if isinstance(rule.condition, tuple) else (rule.condition,)
    for member in members:
        if isinstance(member, Condition) and member.field and member.field not in names:
            names.append(member.field)
    return names


def _has_value(value: Any) -> bool:
    return value is not None and value != ""


class BusinessRuleEngine(BaseRuleEngine):
    """Evaluates business invariants and applies the actions of violated ones."""

    def __init__(
        self,
        custom_rules: Optional[Iterable[Rule]] = None,
        default_rules: Optional[Iterable[Rule]] = None,
        enabled: bool = True,
        real_time: bool = True,
        evaluation_debounce_ms: int = 300,
        max_concurrent_validations: int = 5,
        business_context: Optional[EvaluationContext] = None,
        on_rule_applied: Optional[Callable[[Rule, Any], None]] = None,
        on_rule_failed: Optional[Callable[[Rule, Exception], None]] = None,
        on_validation_complete: Optional[Callable[[BusinessRuleResult], None]] = None,
        on_validation_error: Optional[Callable[[Exception], None]] = None,
    ):
        """
        Initialize business rule engine.

        Args:
            custom_rules: Rules added after the defaults (same id replaces a default)
            default_rules: Built-in rules; None uses default_business_rules()
            enabled: Global switch; when False every pass is trivially valid
            real_time: Debounce evaluate() calls
            evaluation_debounce_ms: Debounce delay in milliseconds
            max_concurrent_validations: Advisory limit for the surrounding form
            business_context: Context used when a call passes none
            on_rule_applied: Called with (rule, output) for each applied action
            on_rule_failed: Called with (rule, exception) when a condition raises
            on_validation_complete: Called with every stored result
            on_validation_error: Called when a pass raises
        """
        self.business_context = business_context or EvaluationContext()
        self._on_rule_failed = on_rule_failed
        self.executor = ActionExecutor(on_action_applied=on_rule_applied)

        super().__init__(
            default_rules=default_business_rules() if default_rules is None else default_rules,
            custom_rules=custom_rules,
            enabled=enabled,
            real_time=real_time,
            debounce_ms=evaluation_debounce_ms,
            max_concurrent_validations=max_concurrent_validations,
            on_validation_complete=on_validation_complete,
            on_validation_error=on_validation_error,
        )

    def evaluate_sync(
        self, value: Any, context: Optional[EvaluationContext] = None
    ) -> BusinessRuleResult:
        """
        Evaluate enabled business rules in priority order.

        Args:
            value: Value of the field under evaluation
            context: Evaluation context (defaults to the engine's context)

        Returns:
            New BusinessRuleResult; invalid when any error-severity rule
            produced a validation message
        """
        context = context or self.business_context

        if not self.enabled:
            return BusinessRuleResult(timestamp=time.time())

        started = time.perf_counter()
        applied: List[Rule] = []
        outputs = ActionOutputs()

        for rule in self.registry.enabled_in_order():
            if not self.is_applicable(rule, context):
                continue
            holds = self.evaluator.evaluate(rule, value, context, on_error=self._on_rule_failed)
            if holds is not False:
                continue
            applied.append(rule)
            self.executor.execute(rule, value, context, outputs)

        errors = outputs.messages[Severity.ERROR]
        result = BusinessRuleResult(
            is_valid=not errors,
            applied_rules=tuple(applied),
            transformations=MappingProxyType(outputs.transformations),
            calculations=MappingProxyType(outputs.calculations),
            notifications=tuple(outputs.notifications),
            custom_outputs=MappingProxyType(outputs.custom_outputs),
            errors=tuple(errors),
            warnings=tuple(outputs.messages[Severity.WARNING]),
            info=tuple(outputs.messages[Severity.INFO]),
            timestamp=time.time(),
            execution_time=self._record_pass(started),
        )
        logger.debug(
            "Business rule pass complete",
            extra={
                "field_name": context.field_name,
                "applied_rules": [rule.id for rule in applied],
            },
        )
        return result

    @staticmethod
    def is_applicable(rule: Rule, context: EvaluationContext) -> bool:
        """True when every field the rule references is the current field or has a value."""
        for name in referenced_fields(rule):
            if name == context.field_name:
                continue
            if not _has_value(context.form_data.get(name)):
                return False
        return True

    def _empty_result(self) -> BusinessRuleResult:
        return BusinessRuleResult(timestamp=time.time())
