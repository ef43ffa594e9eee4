"""
Rule Loader - Declarative Rule Documents

Turns YAML (or already-parsed dict) rule documents into Rule objects and
routes each one to the engine that evaluates it.

## Document Shape

    rules:
      - id: zip-format
        kind: field                 # field | cross_field | business
        message: Enter a 5 digit ZIP code
        severity: warning
        conditions:
          - operator: regex
            value: "^\\d{5}$"

      - id: shipping-total
        kind: business
        fields: [quantity, shippingRate]
        function: "shop.rules:shipping_is_current"
        actions:
          - type: calculation
            field: shippingTotal
            function: "shop.rules:shipping_total"

## Functions

Predicates and action functions cannot be written in YAML, so documents
reference them by import path, "package.module:attribute". The loader
imports the module, resolves the (possibly dotted) attribute and caches the
result. A `custom` condition uses `function` as its fn; a rule-level
`function` is a (value, context) -> bool predicate checked before any listed
conditions.

When `kind` is omitted it is inferred: rules with actions are business
rules, rules with fields are cross-field rules, and anything else is a
single-field rule.
"""

import importlib
import logging
from typing import Any, Callable, Dict, Iterable, List

from jsonschema import Draft7Validator

from .models import ACTION_TYPES, OPERATORS, Action, Condition, Rule, Severity

logger = logging.getLogger(__name__)

RULE_KINDS = ("field", "cross_field", "business")

FUNCTION_REF_PATTERN = r"^[A-Za-z_][\w.]*:[A-Za-z_][\w.]*$"

CONDITION_SCHEMA = {
    "type": "object",
    "required": ["operator"],
    "properties": {
        "operator": {"enum": sorted(OPERATORS)},
        "value": {},
        "field": {"type": "string"},
        "function": {"type": "string", "pattern": FUNCTION_REF_PATTERN},
    },
    "additionalProperties": False,
}

ACTION_SCHEMA = {
    "type": "object",
    "required": ["type"],
    "properties": {
        "type": {"enum": sorted(ACTION_TYPES)},
        "field": {"type": "string"},
        "value": {},
        "message": {"type": "string"},
        "function": {"type": "string", "pattern": FUNCTION_REF_PATTERN},
    },
    "additionalProperties": False,
}

RULE_SCHEMA = {
    "type": "object",
    "required": ["id"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "kind": {"enum": list(RULE_KINDS)},
        "name": {"type": "string"},
        "description": {"type": "string"},
        "message": {"type": "string"},
        "severity": {"enum": [severity.value for severity in Severity]},
        "category": {"type": "string"},
        "enabled": {"type": "boolean"},
        "priority": {"type": "integer"},
        "fields": {"type": "array", "items": {"type": "string"}},
        "conditions": {"type": "array", "items": CONDITION_SCHEMA},
        "actions": {"type": "array", "items": ACTION_SCHEMA},
        "dependencies": {"type": "array", "items": {"type": "string"}},
        "metadata": {"type": "object"},
        "function": {"type": "string", "pattern": FUNCTION_REF_PATTERN},
    },
    "additionalProperties": False,
}

RULES_DOCUMENT_SCHEMA = {
    "type": "object",
    "required": ["rules"],
    "properties": {
        "rules": {"type": "array", "items": RULE_SCHEMA},
    },
}


class RuleConfigError(ValueError):
    """A rule document is malformed or references a function that cannot be imported."""


class RuleLoader:
    """Builds Rule objects from declarative rule documents"""

    def __init__(self):
        self.loaded_functions: Dict[str, Callable] = {}  # Cache: import path -> callable
        self._validator = Draft7Validator(RULES_DOCUMENT_SCHEMA)

    def load_rules(self, documents: Iterable[Any]) -> Dict[str, List[Rule]]:
        """
        Load rules from one or more documents.

        Args:
            documents: Parsed documents, each a {"rules": [...]} mapping or a
                bare list of rule definitions

        Returns:
            Dict keyed by kind ("field", "cross_field", "business") with the
            rules for each engine in document order

        Raises:
            RuleConfigError: If a document fails the schema or a function
                reference cannot be resolved
        """
        routed: Dict[str, List[Rule]] = {kind: [] for kind in RULE_KINDS}
        for document in documents:
            if document is None:
                continue
            if isinstance(document, list):
                document = {"rules": document}
            self.validate_document(document)
            for definition in document["rules"]:
                routed[self.infer_kind(definition)].append(self.build_rule(definition))

        logger.debug(
            "Rule documents loaded",
            extra={kind: len(rules) for kind, rules in routed.items()},
        )
        return routed

    def validate_document(self, document: Any) -> None:
        """
        Check a document against RULES_DOCUMENT_SCHEMA.

        Raises:
            RuleConfigError: Listing every schema violation with its path
        """
        errors = sorted(self._validator.iter_errors(document), key=lambda e: list(e.path))
        if errors:
            details = "; ".join(
                f"{' -> '.join(str(p) for p in error.path) or '<root>'}: {error.message}"
                for error in errors
            )
            raise RuleConfigError(f"Invalid rule document: {details}")

    @staticmethod
    def infer_kind(definition: Dict[str, Any]) -> str:
        """Engine a rule definition belongs to."""
        if "kind" in definition:
            return definition["kind"]
        if definition.get("actions"):
            return "business"
        if definition.get("fields"):
            return "cross_field"
        return "field"

    def build_rule(self, definition: Dict[str, Any]) -> Rule:
        """
        Build one Rule from a schema-valid definition.

        Args:
            definition: Rule definition dict

        Returns:
            Rule with its conditions and actions resolved
        """
        conditions: List[Any] = []
        if "function" in definition:
            conditions.append(self.resolve_function(definition["function"]))
        conditions.extend(self._build_condition(entry) for entry in definition.get("conditions", []))

        try:
            return Rule(
                id=definition["id"],
                name=definition.get("name", definition["id"]),
                description=definition.get("description", ""),
                message=definition.get("message", ""),
                severity=definition.get("severity", Severity.ERROR),
                category=definition.get("category", "custom"),
                enabled=definition.get("enabled", True),
                priority=definition.get("priority", 0),
                condition=tuple(conditions) if conditions else None,
                fields=definition.get("fields", ()),
                actions=[self._build_action(entry) for entry in definition.get("actions", [])],
                dependencies=definition.get("dependencies", ()),
                metadata=definition.get("metadata", {}),
            )
        except ValueError as e:
            raise RuleConfigError(f"Invalid rule {definition.get('id')!r}: {e}")

    def _build_condition(self, entry: Dict[str, Any]) -> Condition:
        fn = self.resolve_function(entry["function"]) if "function" in entry else None
        return Condition(
            operator=entry["operator"],
            value=entry.get("value"),
            field=entry.get("field"),
            fn=fn,
        )

    def _build_action(self, entry: Dict[str, Any]) -> Action:
        fn = self.resolve_function(entry["function"]) if "function" in entry else None
        return Action(
            type=entry["type"],
            field=entry.get("field"),
            value=entry.get("value"),
            message=entry.get("message"),
            fn=fn,
        )

    def resolve_function(self, reference: str) -> Callable:
        """
        Import a "module:attribute" reference.

        Args:
            reference: Import path, e.g. "shop.rules:shipping_total"

        Returns:
            The referenced callable (cached after the first import)

        Raises:
            RuleConfigError: If the module or attribute is missing or the
                attribute is not callable
        """
        if reference in self.loaded_functions:
            return self.loaded_functions[reference]

        module_name, _, attribute_path = reference.partition(":")
        try:
            target: Any = importlib.import_module(module_name)
        except ImportError as e:
            raise RuleConfigError(f"Failed to import {module_name} for {reference}: {e}")

        for attribute in attribute_path.split("."):
            if not hasattr(target, attribute):
                raise RuleConfigError(
                    f"Function '{attribute_path}' not found in module {module_name}"
                )
            target = getattr(target, attribute)

        if not callable(target):
            raise RuleConfigError(f"{reference} is not callable")

        self.loaded_functions[reference] = target
        return target
