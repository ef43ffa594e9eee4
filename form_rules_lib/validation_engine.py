import logging
import time
from typing import Any, Callable, Iterable, List, Mapping, Optional

from .base_engine import BaseRuleEngine
from .default_rules import default_field_rules
from .models import EvaluationContext, EvaluationResult, Rule, Severity
from .scoring import calculate_score
from .suggestions import SuggestionGenerator

logger = logging.getLogger(__name__)


class ValidationEngine(BaseRuleEngine):
    """Field validation: one value against prioritized rules, scored and explained"""

    def __init__(
        self,
        custom_rules: Optional[Iterable[Rule]] = None,
        default_rules: Optional[Iterable[Rule]] = None,
        enabled: bool = True,
        real_time: bool = True,
        validation_debounce_ms: int = 500,
        max_concurrent_validations: int = 5,
        enable_suggestions: bool = True,
        hints: Optional[Mapping[str, str]] = None,
        validation_context: Optional[EvaluationContext] = None,
        on_validation_complete: Optional[Callable[[EvaluationResult], None]] = None,
        on_validation_error: Optional[Callable[[Exception], None]] = None,
    ):
        """
        Initialize validation engine.

        Args:
            custom_rules: Rules added after the defaults (same id replaces a default)
            default_rules: Built-in rules; None uses default_field_rules()
            enabled: Global switch; when False every pass is trivially valid
            real_time: Debounce evaluate() calls
            validation_debounce_ms: Debounce delay in milliseconds
            max_concurrent_validations: Advisory limit for the surrounding form
            enable_suggestions: Derive suggestions from failed error rules
            hints: Extra rule id -> hint entries for the suggestion table
            validation_context: Context used when a call passes none
            on_validation_complete: Called with every stored result
            on_validation_error: Called when a pass raises
        """
        self.validation_context = validation_context or EvaluationContext()
        self.enable_suggestions = enable_suggestions
        self.suggestion_generator = SuggestionGenerator(hints)

        super().__init__(
            default_rules=default_field_rules() if default_rules is None else default_rules,
            custom_rules=custom_rules,
            enabled=enabled,
            real_time=real_time,
            debounce_ms=validation_debounce_ms,
            max_concurrent_validations=max_concurrent_validations,
            on_validation_complete=on_validation_complete,
            on_validation_error=on_validation_error,
        )

    def evaluate_sync(
        self, value: Any, context: Optional[EvaluationContext] = None
    ) -> EvaluationResult:
        """
        Run all enabled rules against a value.

        Rules run in priority order (ties keep registry order). A rule whose
        predicate returns False lands in the bucket for its severity; a rule
        whose predicate raises is left out entirely. Only error-severity
        failures make the result invalid or produce suggestions.

        Args:
            value: Value under validation
            context: Evaluation context (defaults to the engine's context)

        Returns:
            New EvaluationResult; identical inputs give identical buckets,
            score and suggestions
        """
        context = context or self.validation_context

        if not self.enabled:
            return EvaluationResult(context=context, timestamp=time.time())

        started = time.perf_counter()
        rules = self.registry.enabled_in_order()
        buckets = {Severity.ERROR: [], Severity.WARNING: [], Severity.INFO: []}

        for rule in rules:
            holds = self.evaluator.evaluate(rule, value, context)
            if holds is False:
                buckets[rule.severity].append(rule)

        errors: List[Rule] = buckets[Severity.ERROR]
        warnings: List[Rule] = buckets[Severity.WARNING]
        score = calculate_score(errors, warnings, len(rules))
        suggestions = (
            self.suggestion_generator.suggestions(errors) if self.enable_suggestions else []
        )

        result = EvaluationResult(
            is_valid=not errors,
            errors=tuple(errors),
            warnings=tuple(warnings),
            info=tuple(buckets[Severity.INFO]),
            score=score,
            suggestions=tuple(suggestions),
            context=context,
            timestamp=time.time(),
            execution_time=self._record_pass(started),
        )
        logger.debug(
            "Validation pass complete",
            extra={
                "field_name": context.field_name,
                "errors": len(result.errors),
                "warnings": len(result.warnings),
                "score": result.score,
            },
        )
        return result

    def _empty_result(self) -> EvaluationResult:
        return EvaluationResult(context=self.validation_context, timestamp=time.time())
