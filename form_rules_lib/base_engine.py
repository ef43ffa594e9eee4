"""
Behaviour shared by the validation, cross-field and business rule engines.

An engine instance owns its registry, its scheduler and its last result. One
instance is built per logical form; there is no module-level engine state.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional

from .condition_evaluator import ConditionEvaluator
from .models import Rule
from .rule_registry import RuleRegistry
from .scheduler import DebouncedScheduler

logger = logging.getLogger(__name__)


class BaseRuleEngine(ABC):
    """Registry delegation, debounced evaluation and result bookkeeping."""

    def __init__(
        self,
        default_rules: Optional[Iterable[Rule]] = None,
        custom_rules: Optional[Iterable[Rule]] = None,
        enabled: bool = True,
        real_time: bool = True,
        debounce_ms: int = 500,
        max_concurrent_validations: int = 5,
        on_validation_complete: Optional[Callable[[Any], None]] = None,
        on_validation_error: Optional[Callable[[Exception], None]] = None,
    ):
        """
        Initialize engine state.

        Args:
            default_rules: Built-in rules, registered first
            custom_rules: Caller rules (replace defaults with the same id)
            enabled: When False, evaluate_sync returns a trivially valid result
            real_time: When True, evaluate() is debounced; otherwise it resolves immediately
            debounce_ms: Debounce delay in milliseconds
            max_concurrent_validations: Number of schedulers the surrounding form
                is expected to run at once (advisory)
            on_validation_complete: Called with every stored result
            on_validation_error: Called when an evaluation pass raises
        """
        self.registry = RuleRegistry(default_rules, custom_rules)
        self.evaluator = ConditionEvaluator()
        self.enabled = enabled
        self.real_time = real_time
        self.debounce_ms = debounce_ms
        self.max_concurrent_validations = max_concurrent_validations
        self._on_validation_complete = on_validation_complete
        self._on_validation_error = on_validation_error

        self._result = self._empty_result()
        self._passes = 0
        self._total_execution_time = 0.0
        self._scheduler = self._make_scheduler(self.evaluate_sync, type(self).__name__)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    @abstractmethod
    def evaluate_sync(self, *args: Any) -> Any:
        """Run one synchronous evaluation pass."""

    @abstractmethod
    def _empty_result(self) -> Any:
        """Return the trivially valid result for this engine."""

    def evaluate(self, value: Any, context: Any = None) -> "asyncio.Future[Any]":
        """
        Evaluate asynchronously.

        In real-time mode the pass is debounced and rapid calls coalesce to
        the last value. Otherwise the pass runs now and the returned future
        is already resolved. Must be called with a running event loop.

        Returns:
            Future resolving to the result
        """
        if not self.real_time:
            return self._resolved(self.evaluate_sync, value, context)
        return self._scheduler.schedule(value, context)

    @property
    def result(self) -> Any:
        """Last stored result."""
        return self._result

    @property
    def is_validating(self) -> bool:
        return bool(self._scheduler.queue)

    @property
    def validation_queue(self) -> List[Any]:
        return self._scheduler.queue

    def cancel_pending(self) -> None:
        """Cancel debounced work; nothing pending will update the stored result."""
        self._scheduler.cancel()

    def clear_validation(self) -> None:
        """Cancel pending work and reset the stored result."""
        self.cancel_pending()
        self._result = self._empty_result()

    # ------------------------------------------------------------------
    # Rule registry
    # ------------------------------------------------------------------

    def add_rule(self, rule: Rule) -> None:
        self.registry.add(rule)

    def remove_rule(self, rule_id: str) -> None:
        self.registry.remove(rule_id)

    def update_rule(self, rule_id: str, **changes: Any) -> None:
        self.registry.update(rule_id, **changes)

    def enable_rule(self, rule_id: str) -> None:
        self.registry.enable(rule_id)

    def disable_rule(self, rule_id: str) -> None:
        self.registry.disable(rule_id)

    def get_rule(self, rule_id: str) -> Optional[Rule]:
        return self.registry.get(rule_id)

    def get_all_rules(self) -> List[Rule]:
        return self.registry.list()

    def get_rules_by_category(self, category: str) -> List[Rule]:
        return self.registry.by_category(category)

    def get_rules_for_field(self, field_name: str) -> List[Rule]:
        return self.registry.for_field(field_name)

    def get_statistics(self) -> Dict[str, Any]:
        """
        Registry summary plus pass timing.

        Returns:
            Dict from RuleRegistry.statistics() with evaluation_passes and
            average_execution_time (milliseconds) added
        """
        stats = self.registry.statistics()
        stats["evaluation_passes"] = self._passes
        stats["average_execution_time"] = (
            self._total_execution_time / self._passes if self._passes else 0.0
        )
        return stats

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def _make_scheduler(self, evaluate_fn: Callable[..., Any], name: str) -> DebouncedScheduler:
        return DebouncedScheduler(
            evaluate_fn,
            debounce_ms=self.debounce_ms,
            on_complete=self._store_result,
            on_error=self._notify_error,
            name=name,
        )

    def _resolved(self, evaluate_fn: Callable[..., Any], *args: Any) -> "asyncio.Future[Any]":
        future = asyncio.get_running_loop().create_future()
        try:
            result = evaluate_fn(*args)
        except Exception as e:
            logger.error(
                f"{type(self).__name__} evaluation raised {type(e).__name__}: {e}",
                exc_info=True,
            )
            future.set_exception(e)
            self._notify_error(e)
            return future
        future.set_result(result)
        self._store_result(result)
        return future

    def _store_result(self, result: Any) -> None:
        self._result = result
        if self._on_validation_complete is not None:
            self._on_validation_complete(result)

    def _notify_error(self, error: Exception) -> None:
        if self._on_validation_error is not None:
            self._on_validation_error(error)

    def _record_pass(self, started: float) -> float:
        """Account one pass started at perf_counter() value started; return its duration in ms."""
        elapsed_ms = round((time.perf_counter() - started) * 1000, 3)
        self._passes += 1
        self._total_execution_time += elapsed_ms
        return elapsed_ms
