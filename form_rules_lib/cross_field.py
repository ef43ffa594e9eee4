"""
Cross-Field Coordinator - multi-field invariants over the current form values.

The coordinator keeps the latest value of every field it has been told
about. On each change it re-runs only the rules that reference the changed
field, and only those whose referenced fields are all filled in (the
readiness gate), so a half-completed form never reports a mismatch against a
field the user has not reached yet.

The field-value map is the only cross-call state in the library. It is
written by update_field/remove_field and predicates only ever see a
read-only snapshot of it.
"""

import asyncio
import logging
import time
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from .base_engine import BaseRuleEngine
from .default_rules import default_cross_field_rules
from .models import CrossFieldResult, EvaluationContext, Rule, Severity
from .scheduler import DebouncedScheduler

logger = logging.getLogger(__name__)


def is_filled(value: Any) -> bool:
    """Readiness test for one field value: present and not the empty string."""
    return value is not None and value != ""


class CrossFieldCoordinator(BaseRuleEngine):
    """Tracks field values and evaluates cross-field rules as fields change."""

    def __init__(
        self,
        custom_rules: Optional[Iterable[Rule]] = None,
        default_rules: Optional[Iterable[Rule]] = None,
        enabled: bool = True,
        real_time: bool = True,
        validation_debounce_ms: int = 500,
        max_concurrent_validations: int = 5,
        form_data: Optional[Mapping[str, Any]] = None,
        locale: str = "en",
        on_rule_applied: Optional[Callable[[Rule, Any], None]] = None,
        on_rule_failed: Optional[Callable[[Rule, Exception], None]] = None,
        on_validation_complete: Optional[Callable[[CrossFieldResult], None]] = None,
        on_validation_error: Optional[Callable[[Exception], None]] = None,
    ):
        """
        Initialize coordinator.

        Args:
            custom_rules: Rules added after the defaults (same id replaces a default)
            default_rules: Built-in rules; None uses default_cross_field_rules()
            enabled: Global switch; when False every pass is trivially valid
            real_time: Debounce update_field_async() evaluations
            validation_debounce_ms: Debounce delay in milliseconds
            max_concurrent_validations: Number of per-field schedulers the form
                expects to run at once; exceeding it is logged, not enforced
            form_data: Initial field values
            locale: Locale placed in each evaluation context
            on_rule_applied: Called with (rule, details) for each violated rule
            on_rule_failed: Called with (rule, exception) when a condition raises
            on_validation_complete: Called with every stored result
            on_validation_error: Called when a pass raises
        """
        self._field_values: Dict[str, Any] = dict(form_data or {})
        self.locale = locale
        self._on_rule_applied = on_rule_applied
        self._on_rule_failed = on_rule_failed
        self._field_schedulers: Dict[str, DebouncedScheduler] = {}

        super().__init__(
            default_rules=default_cross_field_rules() if default_rules is None else default_rules,
            custom_rules=custom_rules,
            enabled=enabled,
            real_time=real_time,
            debounce_ms=validation_debounce_ms,
            max_concurrent_validations=max_concurrent_validations,
            on_validation_complete=on_validation_complete,
            on_validation_error=on_validation_error,
        )

    @property
    def field_values(self) -> Mapping[str, Any]:
        """Read-only snapshot of the current field values."""
        return MappingProxyType(dict(self._field_values))

    def update_field(self, field_name: str, value: Any) -> CrossFieldResult:
        """
        Record a field change and evaluate the rules it affects.

        Args:
            field_name: Changed field
            value: Its new value

        Returns:
            CrossFieldResult for the rules referencing field_name
        """
        self._field_values[field_name] = value
        result = self.evaluate_sync(field_name)
        self._store_result(result)
        return result

    def update_field_async(self, field_name: str, value: Any) -> "asyncio.Future[CrossFieldResult]":
        """
        Record a field change now and evaluate it after the debounce delay.

        Each field has its own scheduler, so quick edits of one field
        coalesce while edits of different fields are all evaluated. Must be
        called with a running event loop.
        """
        self._field_values[field_name] = value
        if not self.real_time:
            return self._resolved(self.evaluate_sync, field_name)
        return self._scheduler_for(field_name).schedule(field_name)

    def evaluate(self, value: Any, context: Any = None) -> "asyncio.Future[CrossFieldResult]":
        """Debounced re-evaluation of the rules referencing field `value`."""
        if not self.real_time:
            return self._resolved(self.evaluate_sync, value)
        return self._scheduler_for(value).schedule(value)

    def remove_field(self, field_name: str) -> None:
        """Forget a field's value and drop its pending evaluation."""
        self._field_values.pop(field_name, None)
        scheduler = self._field_schedulers.pop(field_name, None)
        if scheduler is not None:
            scheduler.cancel()

    def reset_fields(self) -> None:
        """Forget every field value and cancel all pending evaluations."""
        self.cancel_pending()
        self._field_values.clear()

    def cancel_pending(self) -> None:
        super().cancel_pending()
        for scheduler in self._field_schedulers.values():
            scheduler.cancel()

    @property
    def is_validating(self) -> bool:
        return any(scheduler.queue for scheduler in self._field_schedulers.values())

    @property
    def validation_queue(self) -> List[Any]:
        queue: List[Any] = []
        for scheduler in self._field_schedulers.values():
            queue.extend(scheduler.queue)
        return queue

    def evaluate_sync(self, field_name: str, context: Any = None) -> CrossFieldResult:
        """
        Evaluate the ready rules that reference field_name.

        A violated rule's message is added to the bucket of every field the
        rule lists and to the global bucket for its severity. Rules whose
        condition raises are left out of the result.

        Args:
            field_name: Field whose change triggered the pass

        Returns:
            New CrossFieldResult; invalid when any global error was produced
        """
        if not self.enabled:
            return CrossFieldResult(timestamp=time.time())

        started = time.perf_counter()
        values = self.field_values
        context = EvaluationContext(field_name=field_name, form_data=values, locale=self.locale)

        applied: List[Rule] = []
        per_field: Dict[Severity, Dict[str, List[str]]] = {
            Severity.ERROR: {},
            Severity.WARNING: {},
            Severity.INFO: {},
        }
        global_messages: Dict[Severity, List[str]] = {
            Severity.ERROR: [],
            Severity.WARNING: [],
            Severity.INFO: [],
        }

        for rule in self.registry.enabled_in_order():
            if field_name not in rule.fields:
                continue
            if not all(is_filled(values.get(name)) for name in rule.fields):
                continue

            holds = self.evaluator.evaluate(rule, values, context, on_error=self._on_rule_failed)
            if holds is not False:
                continue

            applied.append(rule)
            for name in rule.fields:
                per_field[rule.severity].setdefault(name, []).append(rule.message)
            global_messages[rule.severity].append(rule.message)
            if self._on_rule_applied is not None:
                self._on_rule_applied(rule, {"field_name": field_name, "value": values[field_name]})

        result = CrossFieldResult(
            is_valid=not global_messages[Severity.ERROR],
            applied_rules=tuple(applied),
            field_errors=_freeze(per_field[Severity.ERROR]),
            field_warnings=_freeze(per_field[Severity.WARNING]),
            field_info=_freeze(per_field[Severity.INFO]),
            global_errors=tuple(global_messages[Severity.ERROR]),
            global_warnings=tuple(global_messages[Severity.WARNING]),
            global_info=tuple(global_messages[Severity.INFO]),
            timestamp=time.time(),
            execution_time=self._record_pass(started),
        )
        logger.debug(
            "Cross-field pass complete",
            extra={
                "field_name": field_name,
                "applied_rules": [rule.id for rule in applied],
            },
        )
        return result

    def _scheduler_for(self, field_name: str) -> DebouncedScheduler:
        scheduler = self._field_schedulers.get(field_name)
        if scheduler is None:
            scheduler = self._make_scheduler(self.evaluate_sync, f"cross-field:{field_name}")
            self._field_schedulers[field_name] = scheduler
            if len(self._field_schedulers) > self.max_concurrent_validations:
                logger.warning(
                    f"{len(self._field_schedulers)} field schedulers exceed "
                    f"max_concurrent_validations={self.max_concurrent_validations}",
                    extra={"field_name": field_name},
                )
        return scheduler

    def _empty_result(self) -> CrossFieldResult:
        return CrossFieldResult(timestamp=time.time())


def _freeze(buckets: Dict[str, List[str]]) -> Mapping[str, tuple]:
    return MappingProxyType({name: tuple(messages) for name, messages in buckets.items()})
