"""
form-rules-lib: Rule-based form validation with cross-field and business rules

This library provides a pure Python form rule service with:
- Prioritized field validation with severity buckets, a quality score and
  fix suggestions
- Cross-field invariants that only run once every field they need is filled in
- Business rules whose actions validate, transform, notify and calculate
- Debounced asynchronous evaluation on asyncio
- Two-tier configuration and declarative YAML rule documents

Example:
    from form_rules_lib import FormValidationService

    service = FormValidationService()
    result = service.validate_sync("ab", "username")
    print(result.score, result.suggestions)
"""

from .api import FormValidationService
from .business_rules import BusinessRuleEngine
from .config_loader import ConfigLoader
from .cross_field import CrossFieldCoordinator
from .models import (
    Action,
    BusinessRuleResult,
    Condition,
    CrossFieldResult,
    EvaluationContext,
    EvaluationResult,
    Rule,
    Severity,
)
from .rule_loader import RuleConfigError, RuleLoader
from .rule_registry import RuleRegistry
from .scheduler import DebouncedScheduler
from .validation_engine import ValidationEngine

__version__ = "0.1.0"
__all__ = [
    "FormValidationService",
    "ValidationEngine",
    "CrossFieldCoordinator",
    "BusinessRuleEngine",
    "RuleRegistry",
    "DebouncedScheduler",
    "ConfigLoader",
    "RuleLoader",
    "RuleConfigError",
    "Rule",
    "Condition",
    "Action",
    "Severity",
    "EvaluationContext",
    "EvaluationResult",
    "CrossFieldResult",
    "BusinessRuleResult",
]
