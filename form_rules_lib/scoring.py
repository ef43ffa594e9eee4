"""Confidence score derived from weighted rule failures."""

import math
from typing import Sequence

ERROR_WEIGHT = 3
WARNING_WEIGHT = 1


def calculate_score(
    errors: Sequence[object], warnings: Sequence[object], total_enabled_rules: int
) -> int:
    """
    Convert failed rules into a 0-100 score.

    An error costs ERROR_WEIGHT, a warning WARNING_WEIGHT, out of a budget of
    ERROR_WEIGHT per enabled rule. Info failures cost nothing.

    Args:
        errors: Failed error-severity rules
        warnings: Failed warning-severity rules
        total_enabled_rules: Number of enabled rules in the pass

    Returns:
        Score clamped to [0, 100]; 100 when no rules are enabled
    """
    if total_enabled_rules <= 0:
        return 100

    total_weight = total_enabled_rules * ERROR_WEIGHT
    penalty = len(errors) * ERROR_WEIGHT + len(warnings) * WARNING_WEIGHT
    raw = (total_weight - penalty) / total_weight * 100
    # Half rounds up
    return min(100, max(0, int(math.floor(raw + 0.5))))
