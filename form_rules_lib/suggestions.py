"""Remediation hints for failed rules."""

from typing import Dict, List, Mapping, Optional, Sequence

from .models import Rule

DEFAULT_HINTS: Mapping[str, str] = {
    "minLength": "Try adding more characters to meet the minimum length requirement",
    "maxLength": "Try shortening the text to meet the maximum length requirement",
    "email": "Try adding @ and a domain (e.g., example@domain.com)",
    "phone": "Try using only numbers and optional + prefix",
    "url": "Try adding https:// or http:// prefix",
    "strongPassword": "Try adding uppercase letters, numbers, and special characters",
    "noSpaces": "Try removing spaces or using underscores instead",
    "alphanumeric": "Try using only letters and numbers",
    "noSpecialChars": "Try removing special characters",
}


class SuggestionGenerator:
    """Maps failed rule ids to human-readable hints."""

    def __init__(self, hints: Optional[Mapping[str, str]] = None):
        self._hints: Dict[str, str] = dict(DEFAULT_HINTS)
        if hints:
            self._hints.update(hints)

    def register_hint(self, rule_id: str, hint: str) -> None:
        self._hints[rule_id] = hint

    def suggestions(self, failed_rules: Sequence[Rule]) -> List[str]:
        """
        One hint per failed rule, in the order given.

        Rules without a registered hint fall back to "Fix: <rule message>".
        """
        return [
            self._hints.get(rule.id, f"Fix: {rule.message}") for rule in failed_rules
        ]
