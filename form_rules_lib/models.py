"""
Rule and result types shared by every engine.

A Rule is a declarative, prioritized predicate. Its condition expresses the
invariant that should hold for the evaluated value; when the condition is
violated the rule is classified by severity (validation, cross-field) or its
actions fire (business rules).

Rules and results are frozen dataclasses. The registry replaces a rule on
update instead of mutating it, and every evaluation call builds a new result.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Tuple


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


OPERATORS = frozenset(
    [
        "equals",
        "not_equals",
        "contains",
        "not_contains",
        "greater_than",
        "less_than",
        "in",
        "not_in",
        "regex",
        "custom",
    ]
)

ACTION_TYPES = frozenset(
    ["validation", "transformation", "notification", "calculation", "custom"]
)

EMPTY_MAPPING: Mapping[str, Any] = MappingProxyType({})


def _freeze_mapping(data: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    if not data:
        return EMPTY_MAPPING
    return MappingProxyType(dict(data))


@dataclass(frozen=True)
class Condition:
    """
    Declarative predicate for externally configured rules.

    Args:
        operator: One of OPERATORS
        value: Operand compared against the evaluated value
        field: Form field the evaluated value is read from (optional)
        fn: Callable (value, context) -> bool, used by the custom operator
    """

    operator: str
    value: Any = None
    field: Optional[str] = None
    fn: Optional[Callable[[Any, Any], bool]] = None

    def __post_init__(self):
        if self.operator not in OPERATORS:
            raise ValueError(
                f"Unknown condition operator: {self.operator!r}. "
                f"Expected one of: {', '.join(sorted(OPERATORS))}"
            )


@dataclass(frozen=True)
class Action:
    """
    Side effect executed when a business rule's invariant is violated.

    Args:
        type: One of ACTION_TYPES
        field: Output key for transformation, calculation and custom actions
        value: Static output used when no fn is given
        message: Message for validation and notification actions
        fn: Callable (value, context) -> Any computing the output
    """

    type: str
    field: Optional[str] = None
    value: Any = None
    message: Optional[str] = None
    fn: Optional[Callable[[Any, Any], Any]] = None

    def __post_init__(self):
        if self.type not in ACTION_TYPES:
            raise ValueError(
                f"Unknown action type: {self.type!r}. "
                f"Expected one of: {', '.join(sorted(ACTION_TYPES))}"
            )


@dataclass(frozen=True)
class Rule:
    """
    A named, prioritized, enable-able predicate.

    `condition` is a callable (value, context) -> bool, a Condition, or a
    sequence of either that must all hold. A rule without a condition always
    holds. Lower `priority` runs first; ties keep registry order.

    `fields` lists the form fields a cross-field rule depends on. `actions`
    are only used by business rules. `dependencies` is advisory metadata and
    does not change evaluation order.
    """

    id: str
    name: str = ""
    description: str = ""
    message: str = ""
    severity: Severity = Severity.ERROR
    category: str = "custom"
    enabled: bool = True
    priority: int = 0
    condition: Any = None
    fields: Tuple[str, ...] = ()
    actions: Tuple[Action, ...] = ()
    dependencies: Tuple[str, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        if not self.id:
            raise ValueError("Rule must define an id")
        # Normalise sequences so rules built from YAML lists compare equal
        object.__setattr__(self, "severity", Severity(self.severity))
        object.__setattr__(self, "fields", tuple(self.fields))
        object.__setattr__(self, "actions", tuple(self.actions))
        object.__setattr__(self, "dependencies", tuple(self.dependencies))
        object.__setattr__(self, "metadata", _freeze_mapping(self.metadata))
        if not (
            self.condition is None
            or isinstance(self.condition, Condition)
            or callable(self.condition)
        ):
            try:
                object.__setattr__(self, "condition", tuple(self.condition))
            except TypeError:
                raise ValueError(f"Rule {self.id} has an unsupported condition: {self.condition!r}")


@dataclass(frozen=True)
class EvaluationContext:
    """Read-only input to one evaluation call. Never mutated by the engines."""

    field_name: Optional[str] = None
    form_data: Mapping[str, Any] = field(default_factory=lambda: EMPTY_MAPPING)
    user_context: Mapping[str, Any] = field(default_factory=lambda: EMPTY_MAPPING)
    system_context: Mapping[str, Any] = field(default_factory=lambda: EMPTY_MAPPING)
    locale: str = "en"

    def __post_init__(self):
        object.__setattr__(self, "form_data", _freeze_mapping(self.form_data))
        object.__setattr__(self, "user_context", _freeze_mapping(self.user_context))
        object.__setattr__(
            self, "system_context", _freeze_mapping(self.system_context)
        )


def _rule_ids(rules: Tuple[Rule, ...]) -> list:
    return [rule.id for rule in rules]


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of one field validation pass."""

    is_valid: bool = True
    errors: Tuple[Rule, ...] = ()
    warnings: Tuple[Rule, ...] = ()
    info: Tuple[Rule, ...] = ()
    score: int = 100
    suggestions: Tuple[str, ...] = ()
    context: Optional[EvaluationContext] = None
    timestamp: float = 0.0
    execution_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data view with rules reduced to their ids."""
        return {
            "is_valid": self.is_valid,
            "errors": _rule_ids(self.errors),
            "warnings": _rule_ids(self.warnings),
            "info": _rule_ids(self.info),
            "score": self.score,
            "suggestions": list(self.suggestions),
            "timestamp": self.timestamp,
            "execution_time": self.execution_time,
        }


@dataclass(frozen=True)
class CrossFieldResult:
    """Outcome of one cross-field pass, bucketed per field and globally."""

    is_valid: bool = True
    applied_rules: Tuple[Rule, ...] = ()
    field_errors: Mapping[str, Tuple[str, ...]] = field(
        default_factory=lambda: EMPTY_MAPPING
    )
    field_warnings: Mapping[str, Tuple[str, ...]] = field(
        default_factory=lambda: EMPTY_MAPPING
    )
    field_info: Mapping[str, Tuple[str, ...]] = field(
        default_factory=lambda: EMPTY_MAPPING
    )
    global_errors: Tuple[str, ...] = ()
    global_warnings: Tuple[str, ...] = ()
    global_info: Tuple[str, ...] = ()
    timestamp: float = 0.0
    execution_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "applied_rules": _rule_ids(self.applied_rules),
            "field_errors": {k: list(v) for k, v in self.field_errors.items()},
            "field_warnings": {k: list(v) for k, v in self.field_warnings.items()},
            "field_info": {k: list(v) for k, v in self.field_info.items()},
            "global_errors": list(self.global_errors),
            "global_warnings": list(self.global_warnings),
            "global_info": list(self.global_info),
            "timestamp": self.timestamp,
            "execution_time": self.execution_time,
        }


@dataclass(frozen=True)
class BusinessRuleResult:
    """Outcome of one business rule pass, including action outputs."""

    is_valid: bool = True
    applied_rules: Tuple[Rule, ...] = ()
    transformations: Mapping[str, Any] = field(default_factory=lambda: EMPTY_MAPPING)
    calculations: Mapping[str, Any] = field(default_factory=lambda: EMPTY_MAPPING)
    notifications: Tuple[str, ...] = ()
    custom_outputs: Mapping[str, Any] = field(default_factory=lambda: EMPTY_MAPPING)
    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    info: Tuple[str, ...] = ()
    timestamp: float = 0.0
    execution_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "applied_rules": _rule_ids(self.applied_rules),
            "transformations": dict(self.transformations),
            "calculations": dict(self.calculations),
            "notifications": list(self.notifications),
            "custom_outputs": dict(self.custom_outputs),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "info": list(self.info),
            "timestamp": self.timestamp,
            "execution_time": self.execution_time,
        }
