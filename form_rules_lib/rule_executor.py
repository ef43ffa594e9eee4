import logging
from typing import Any, Callable, Dict, List, Optional

from .models import Action, EvaluationContext, Rule, Severity

logger = logging.getLogger(__name__)

_NO_EFFECT = object()


class ActionOutputs:
    """Mutable accumulator for one business pass; frozen into a result by the engine"""

    def __init__(self):
        self.transformations: Dict[str, Any] = {}
        self.calculations: Dict[str, Any] = {}
        self.notifications: List[str] = []
        self.custom_outputs: Dict[str, Any] = {}
        self.messages: Dict[Severity, List[str]] = {
            Severity.ERROR: [],
            Severity.WARNING: [],
            Severity.INFO: [],
        }


class ActionExecutor:
    """Executes a fired rule's actions in declaration order, isolating failures per action"""

    def __init__(self, on_action_applied: Optional[Callable[[Rule, Any], None]] = None):
        """
        Initialize action executor.

        Args:
            on_action_applied: Called with (rule, output) after each action that
                produced an effect
        """
        self._on_action_applied = on_action_applied

    def execute(
        self,
        rule: Rule,
        value: Any,
        context: EvaluationContext,
        outputs: ActionOutputs,
    ) -> None:
        """
        Run every action of a rule whose invariant was violated.

        An action whose function raises has no effect; the remaining actions
        still run.

        Args:
            rule: Fired rule
            value: Value under evaluation
            context: Evaluation context handed to action functions
            outputs: Accumulator the effects are merged into
        """
        for action in rule.actions:
            output = self._compute(rule, action, value, context)
            if output is _NO_EFFECT:
                continue
            self._merge(rule, action, output, outputs)
            if self._on_action_applied is not None:
                self._on_action_applied(rule, output)

    def _compute(self, rule: Rule, action: Action, value: Any, context: EvaluationContext) -> Any:
        """Return the action's output, or _NO_EFFECT if its function raised."""
        if action.type in ("validation", "notification") and action.fn is None:
            return action.message
        if action.fn is None:
            # custom actions without a function hand back the evaluated value
            return value if action.type == "custom" else action.value

        try:
            return action.fn(value, context)
        except Exception as e:
            logger.warning(
                f"Action {action.type} of rule {rule.id} raised {type(e).__name__}: {e}",
                extra={"rule_id": rule.id, "action_type": action.type},
                exc_info=True,
            )
            return _NO_EFFECT

    def _merge(self, rule: Rule, action: Action, output: Any, outputs: ActionOutputs) -> None:
        if action.type == "validation":
            if output:
                outputs.messages[rule.severity].append(str(output))
        elif action.type == "transformation":
            if action.field:
                outputs.transformations[action.field] = output
        elif action.type == "calculation":
            if action.field:
                outputs.calculations[action.field] = output
        elif action.type == "notification":
            if output:
                outputs.notifications.append(str(output))
        else:
            outputs.custom_outputs[action.field or rule.id] = output
