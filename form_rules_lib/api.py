"""
Public API for form-rules-lib

This is the "front door" - one object per form that wires the field
validation engine, the cross-field coordinator and the business rule engine
to the same configuration and the same field values.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from .business_rules import BusinessRuleEngine
from .config_loader import ConfigLoader
from .cross_field import CrossFieldCoordinator
from .models import BusinessRuleResult, CrossFieldResult, EvaluationContext, EvaluationResult, Rule
from .rule_loader import RuleLoader
from .validation_engine import ValidationEngine

logger = logging.getLogger(__name__)


class FormValidationService:
    """
    Main form validation service class.

    Builds the three engines from the bundled engine-config.yaml, an optional
    user config and any declarative rule documents it names, then adds the
    rules passed in code.

    Example:
        from form_rules_lib import FormValidationService

        service = FormValidationService()
        service.update_field("password", "Secret1!")
        result = service.update_field("confirmPassword", "Secret2!")
        print(result.global_errors)  # ('Passwords do not match',)

        # Pick up edited rule documents without rebuilding the form
        service.reload_rules()
    """

    def __init__(
        self,
        config_uri: Optional[str] = None,
        config_overrides: Optional[Dict[str, Any]] = None,
        field_rules: Optional[Iterable[Rule]] = None,
        cross_field_rules: Optional[Iterable[Rule]] = None,
        business_rules: Optional[Iterable[Rule]] = None,
        form_data: Optional[Mapping[str, Any]] = None,
        user_context: Optional[Mapping[str, Any]] = None,
        on_rule_applied: Optional[Callable[[Rule, Any], None]] = None,
        on_rule_failed: Optional[Callable[[Rule, Exception], None]] = None,
        on_validation_error: Optional[Callable[[Exception], None]] = None,
    ):
        """
        Initialize form validation service.

        The service automatically:
        1. Loads bundled engine-config.yaml and merges the user config over it
        2. Loads rule documents named by rules_uri
        3. Builds the validation, cross-field and business engines

        Args:
            config_uri: Relative path, file:// or http(s):// URI of a user config
            config_overrides: Config dict merged over everything else
            field_rules: Extra field validation rules
            cross_field_rules: Extra cross-field rules
            business_rules: Extra business rules
            form_data: Initial field values
            user_context: User data placed in every evaluation context
            on_rule_applied: Called for each violated cross-field rule and
                each applied business action
            on_rule_failed: Called with (rule, exception) when a condition raises
            on_validation_error: Called when any engine pass raises

        Raises:
            ValueError: If the config is invalid (RuleConfigError for rule documents)
            RuntimeError: If a config or rule document cannot be fetched
        """
        self._config_uri = config_uri
        self._config_overrides = config_overrides
        self._extra_rules = {
            "field": list(field_rules or []),
            "cross_field": list(cross_field_rules or []),
            "business": list(business_rules or []),
        }
        self.user_context = dict(user_context or {})
        self._on_rule_applied = on_rule_applied
        self._on_rule_failed = on_rule_failed
        self._on_validation_error = on_validation_error

        self._initialize(form_data)

    def _initialize(self, form_data: Optional[Mapping[str, Any]]):
        """Internal initialization logic (used by __init__ and reload_rules)."""
        self.config_loader = ConfigLoader(self._config_uri, self._config_overrides)
        self.rule_loader = RuleLoader()
        loaded = self.rule_loader.load_rules(self.config_loader.get_rule_documents())

        self.validation_engine = ValidationEngine(
            custom_rules=loaded["field"] + self._extra_rules["field"],
            on_validation_error=self._on_validation_error,
            **self.config_loader.get_validation_config(),
        )
        self.cross_field = CrossFieldCoordinator(
            custom_rules=loaded["cross_field"] + self._extra_rules["cross_field"],
            form_data=form_data,
            on_rule_applied=self._on_rule_applied,
            on_rule_failed=self._on_rule_failed,
            on_validation_error=self._on_validation_error,
            **self.config_loader.get_cross_field_config(),
        )
        self.business_engine = BusinessRuleEngine(
            custom_rules=loaded["business"] + self._extra_rules["business"],
            on_rule_applied=self._on_rule_applied,
            on_rule_failed=self._on_rule_failed,
            on_validation_error=self._on_validation_error,
            **self.config_loader.get_business_rules_config(),
        )
        logger.info(
            "Form validation service initialized",
            extra={
                "field_rules": len(self.validation_engine.get_all_rules()),
                "cross_field_rules": len(self.cross_field.get_all_rules()),
                "business_rules": len(self.business_engine.get_all_rules()),
            },
        )

    def context_for(self, field_name: Optional[str]) -> EvaluationContext:
        """Evaluation context carrying the current field values."""
        return EvaluationContext(
            field_name=field_name,
            form_data=self.cross_field.field_values,
            user_context=self.user_context,
            locale=self.cross_field.locale,
        )

    @property
    def form_data(self) -> Mapping[str, Any]:
        """Read-only snapshot of the current field values."""
        return self.cross_field.field_values

    def validate_sync(self, value: Any, field_name: Optional[str] = None) -> EvaluationResult:
        """
        Validate a single value against the field rules.

        Args:
            value: Value under validation
            field_name: Field the value belongs to (placed in the context)

        Returns:
            EvaluationResult with errors, warnings, info, score and suggestions

        Example:
            result = service.validate_sync("ab", "username")
            if not result.is_valid:
                print(result.suggestions)
        """
        return self.validation_engine.evaluate_sync(value, self.context_for(field_name))

    def validate(self, value: Any, field_name: Optional[str] = None) -> "asyncio.Future[EvaluationResult]":
        """Debounced validate_sync(); must be called with a running event loop."""
        return self.validation_engine.evaluate(value, self.context_for(field_name))

    def update_field(self, field_name: str, value: Any) -> CrossFieldResult:
        """Record a field change and run the cross-field rules it affects."""
        return self.cross_field.update_field(field_name, value)

    def update_field_async(self, field_name: str, value: Any) -> "asyncio.Future[CrossFieldResult]":
        """Record a field change now; run its cross-field rules after the debounce delay."""
        return self.cross_field.update_field_async(field_name, value)

    def evaluate_business_rules_sync(self, field_name: str, value: Any) -> BusinessRuleResult:
        """
        Evaluate business rules for one field against the current form values.

        Args:
            field_name: Field under evaluation
            value: Its value

        Returns:
            BusinessRuleResult with transformations, calculations,
            notifications, custom outputs and validation messages
        """
        return self.business_engine.evaluate_sync(value, self.context_for(field_name))

    def evaluate_business_rules(
        self, field_name: str, value: Any
    ) -> "asyncio.Future[BusinessRuleResult]":
        """Debounced evaluate_business_rules_sync(); needs a running event loop."""
        return self.business_engine.evaluate(value, self.context_for(field_name))

    def process_field_change(self, field_name: str, value: Any) -> Dict[str, Any]:
        """
        Run every engine for one field change, synchronously.

        The value is recorded first so cross-field and business rules see it.

        Returns:
            Dict with "validation", "cross_field" and "business_rules" results
            and an overall "is_valid"
        """
        cross_field = self.update_field(field_name, value)
        validation = self.validate_sync(value, field_name)
        business = self.evaluate_business_rules_sync(field_name, value)
        return {
            "validation": validation,
            "cross_field": cross_field,
            "business_rules": business,
            "is_valid": validation.is_valid and cross_field.is_valid and business.is_valid,
        }

    def get_summary(self) -> Dict[str, Any]:
        """
        Summarise the last stored result and rule statistics of every engine.

        Returns:
            Dict with is_valid, per-engine last results (as dicts) and
            per-engine statistics
        """
        engines = {
            "validation": self.validation_engine,
            "cross_field": self.cross_field,
            "business_rules": self.business_engine,
        }
        return {
            "is_valid": all(engine.result.is_valid for engine in engines.values()),
            "is_validating": any(engine.is_validating for engine in engines.values()),
            "results": {name: engine.result.to_dict() for name, engine in engines.items()},
            "statistics": {name: engine.get_statistics() for name, engine in engines.items()},
        }

    def reload_rules(self):
        """
        Reload configuration and rule documents from source.

        Pending evaluations are cancelled, remote documents are re-fetched
        and the engines are rebuilt. Field values are kept.

        Raises:
            RuntimeError: If a config or rule document cannot be fetched
        """
        form_data = dict(self.cross_field.field_values)
        self.close()
        self.config_loader.clear_cache()
        self._initialize(form_data)

    def get_config_age(self) -> Optional[float]:
        """Seconds since the configuration was loaded."""
        return self.config_loader.get_config_age()

    def close(self):
        """Cancel all pending debounced work."""
        for engine in (self.validation_engine, self.cross_field, self.business_engine):
            engine.cancel_pending()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
