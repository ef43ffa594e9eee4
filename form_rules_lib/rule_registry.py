"""Ordered, id-keyed collection of rule definitions."""

import dataclasses
import logging
from typing import Dict, Iterable, List, Optional

from .models import Rule

logger = logging.getLogger(__name__)


class RuleRegistry:
    """
    Holds rules in insertion order.

    Insertion order is the tie-break for equal priorities, so replacing a
    rule through update() keeps its position. Operations on unknown ids are
    no-ops: callers may hold stale ids after the form has re-rendered.
    """

    def __init__(
        self,
        default_rules: Optional[Iterable[Rule]] = None,
        custom_rules: Optional[Iterable[Rule]] = None,
    ):
        """
        Initialize registry with default and custom rules.

        Args:
            default_rules: Built-in rules, added first
            custom_rules: Caller rules; a custom rule whose id matches a
                default replaces that default in place

        Raises:
            ValueError: If custom_rules repeats an id
        """
        self._rules: List[Rule] = []
        for rule in default_rules or []:
            self.add(rule)

        default_ids = {rule.id for rule in self._rules}
        for rule in custom_rules or []:
            if rule.id in default_ids:
                self._replace(rule.id, rule)
                default_ids.discard(rule.id)
            else:
                self.add(rule)

    def add(self, rule: Rule) -> None:
        """
        Append a rule.

        Raises:
            ValueError: If a rule with the same id is already registered
        """
        if self._index(rule.id) is not None:
            raise ValueError(f"Duplicate rule id registered: {rule.id}")
        self._rules.append(rule)
        logger.debug("Rule added", extra={"rule_id": rule.id})

    def remove(self, rule_id: str) -> None:
        self._rules = [rule for rule in self._rules if rule.id != rule_id]

    def update(self, rule_id: str, **changes) -> None:
        """
        Shallow-merge changes into a rule.

        Args:
            rule_id: Rule to update (unknown ids are ignored)
            **changes: Rule attributes to replace

        Raises:
            ValueError: If changes try to alter the rule id
        """
        if changes.get("id", rule_id) != rule_id:
            raise ValueError(f"Rule id cannot be changed: {rule_id}")
        index = self._index(rule_id)
        if index is None:
            logger.debug("Ignoring update for unknown rule", extra={"rule_id": rule_id})
            return
        self._rules[index] = dataclasses.replace(self._rules[index], **changes)

    def enable(self, rule_id: str) -> None:
        self.update(rule_id, enabled=True)

    def disable(self, rule_id: str) -> None:
        self.update(rule_id, enabled=False)

    def get(self, rule_id: str) -> Optional[Rule]:
        index = self._index(rule_id)
        return self._rules[index] if index is not None else None

    def list(self) -> List[Rule]:
        """Return a snapshot copy of all rules in registry order."""
        return list(self._rules)

    def enabled_in_order(self) -> List[Rule]:
        """Return enabled rules sorted by priority; sort is stable so ties keep registry order."""
        return sorted(
            (rule for rule in self._rules if rule.enabled),
            key=lambda rule: rule.priority,
        )

    def by_category(self, category: str) -> List[Rule]:
        return [rule for rule in self._rules if rule.category == category]

    def for_field(self, field_name: str) -> List[Rule]:
        return [rule for rule in self._rules if field_name in rule.fields]

    def statistics(self) -> Dict[str, object]:
        """
        Summarise the registry contents.

        Returns:
            Dict with total/enabled/disabled counts, counts per severity,
            per category and per referenced field
        """
        enabled = sum(1 for rule in self._rules if rule.enabled)
        by_severity: Dict[str, int] = {}
        by_category: Dict[str, int] = {}
        by_field: Dict[str, int] = {}
        for rule in self._rules:
            by_severity[rule.severity.value] = by_severity.get(rule.severity.value, 0) + 1
            by_category[rule.category] = by_category.get(rule.category, 0) + 1
            for field_name in rule.fields:
                by_field[field_name] = by_field.get(field_name, 0) + 1

        return {
            "total_rules": len(self._rules),
            "enabled_rules": enabled,
            "disabled_rules": len(self._rules) - enabled,
            "rules_by_severity": by_severity,
            "rules_by_category": by_category,
            "rules_by_field": by_field,
        }

    def _replace(self, rule_id: str, rule: Rule) -> None:
        self._rules[self._index(rule_id)] = rule

    def _index(self, rule_id: str) -> Optional[int]:
        for index, rule in enumerate(self._rules):
            if rule.id == rule_id:
                return index
        return None

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: str) -> bool:
        return self._index(rule_id) is not None
