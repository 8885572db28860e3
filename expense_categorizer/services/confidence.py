"""Confidence engine for categorization patterns.

Effective confidence combines the author-assigned weight with observed accuracy:
- fewer than SPARSE_DATA_THRESHOLD uses: weight * SPARSE_DATA_PENALTY
- otherwise: weight * (0.5 + success_rate * 0.5)

A pattern that is always right reaches its full weight; one that is never right
floors at half weight.

`record_usage` is the only place counters and success_rate change on an
in-memory pattern. The persistent equivalent is the atomic UPDATE in
stores.patterns.
"""

from __future__ import annotations

from typing import Any

from expense_categorizer.services.errors import InvariantViolation

SPARSE_DATA_THRESHOLD = 5
SPARSE_DATA_PENALTY = 0.7

MIN_WEIGHT = 0.1
MAX_WEIGHT = 5.0
DEFAULT_WEIGHT = 1.0


def calculate_success_rate(success_count: int, usage_count: int) -> float:
    """success_count / usage_count, or 0.0 for an unused pattern."""
    if usage_count <= 0:
        return 0.0
    return success_count / usage_count


def effective_confidence(pattern: Any) -> float:
    """Trust score used to rank competing matches."""
    weight = float(pattern.confidence_weight if pattern.confidence_weight is not None else DEFAULT_WEIGHT)
    usage_count = pattern.usage_count or 0

    if usage_count < SPARSE_DATA_THRESHOLD:
        return weight * SPARSE_DATA_PENALTY

    success_rate = float(pattern.success_rate or 0.0)
    return weight * (0.5 + success_rate * 0.5)


def record_usage(pattern: Any, was_successful: bool) -> Any:
    """Apply one match outcome to an in-memory pattern and return it.

    Increments usage_count (and success_count when successful), then recomputes
    success_rate.
    """
    check_invariants(pattern)

    pattern.usage_count = (pattern.usage_count or 0) + 1
    if was_successful:
        pattern.success_count = (pattern.success_count or 0) + 1
    pattern.success_rate = calculate_success_rate(pattern.success_count or 0, pattern.usage_count)
    return pattern


def check_invariants(pattern: Any) -> None:
    """Raise InvariantViolation when counters, rate or weight are out of bounds."""
    usage_count = pattern.usage_count or 0
    success_count = pattern.success_count or 0

    if usage_count < 0 or success_count < 0:
        raise InvariantViolation(
            f"negative counters: usage_count={usage_count} success_count={success_count}"
        )
    if success_count > usage_count:
        raise InvariantViolation(
            f"success_count ({success_count}) exceeds usage_count ({usage_count})"
        )

    rate = pattern.success_rate
    if rate is not None and not 0.0 <= float(rate) <= 1.0:
        raise InvariantViolation(f"success_rate {rate} outside [0, 1]")

    weight = pattern.confidence_weight
    if weight is not None and not MIN_WEIGHT <= float(weight) <= MAX_WEIGHT:
        raise InvariantViolation(f"confidence_weight {weight} outside [{MIN_WEIGHT}, {MAX_WEIGHT}]")
