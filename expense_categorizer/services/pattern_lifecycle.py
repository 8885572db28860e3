"""Pattern lifecycle: authoring, usage recording and automatic retirement.

State machine:
- active -> inactive: automatic, when a mature, non-user pattern performs poorly
- inactive -> active: only through an explicit set_active() call
- there is no deleted state here

The deactivation check runs right after every usage recording, so a degrading
pattern is retired on the request that pushes it over the line.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Protocol

from expense_categorizer.services.confidence import (
    DEFAULT_WEIGHT,
    MAX_WEIGHT,
    MIN_WEIGHT,
    check_invariants,
)
from expense_categorizer.services.errors import DuplicatePatternError, PatternFormatError
from expense_categorizer.services.pattern_matcher import PatternType, validate_pattern_value

logger = logging.getLogger("uvicorn.error")

MATURITY_THRESHOLD = 20
POOR_PERFORMANCE_THRESHOLD = 0.3


class PatternStore(Protocol):
    """Persistence capabilities the lifecycle manager needs."""

    async def get(self, pattern_id: int) -> Any | None: ...

    async def find_duplicate(
        self, category_id: int, pattern_type: PatternType, pattern_value: str
    ) -> Any | None: ...

    async def add(self, **fields: Any) -> Any: ...

    async def update(self, pattern_id: int, **fields: Any) -> Any | None: ...

    async def increment_usage(self, pattern_id: int, was_successful: bool) -> Any | None:
        """Atomically bump counters and recompute success_rate; return the fresh row."""
        ...

    async def list_mature_underperformers(
        self, min_usage: int, max_success_rate: float
    ) -> list[Any]: ...


@dataclass(frozen=True)
class UsageOutcome:
    """Pattern counters right after a usage was recorded."""

    pattern_id: int
    usage_count: int
    success_count: int
    success_rate: float
    active: bool
    deactivated: bool


def should_deactivate(pattern: Any) -> bool:
    """Mature, poorly performing and not user-authored."""
    if pattern.user_created:
        return False
    usage_count = pattern.usage_count or 0
    success_rate = float(pattern.success_rate or 0.0)
    return usage_count >= MATURITY_THRESHOLD and success_rate < POOR_PERFORMANCE_THRESHOLD


async def check_and_deactivate(store: PatternStore, pattern: Any) -> bool:
    """Persist active=False when the pattern qualifies. Returns True if it was deactivated."""
    if pattern.active is False or not should_deactivate(pattern):
        return False

    await store.update(pattern.id, active=False)
    logger.info(
        "[patterns] Deactivated pattern id=%s type=%s value=%r (usage=%s success_rate=%.2f)",
        pattern.id,
        pattern.pattern_type,
        pattern.pattern_value,
        pattern.usage_count,
        float(pattern.success_rate or 0.0),
    )
    return True


async def record_usage(
    store: PatternStore, pattern_id: int, was_successful: bool
) -> UsageOutcome | None:
    """Record one match outcome for a stored pattern, then run the deactivation check.

    Returns None when the pattern does not exist.
    """
    updated = await store.increment_usage(pattern_id, was_successful)
    if updated is None:
        return None

    check_invariants(updated)
    deactivated = await check_and_deactivate(store, updated)

    return UsageOutcome(
        pattern_id=updated.id,
        usage_count=updated.usage_count,
        success_count=updated.success_count,
        success_rate=float(updated.success_rate),
        active=bool(updated.active) and not deactivated,
        deactivated=deactivated,
    )


def _validate_weight(weight: float | None) -> float:
    if weight is None:
        return DEFAULT_WEIGHT
    try:
        value = float(weight)
    except (TypeError, ValueError):
        raise PatternFormatError("confidence_weight", "must be a number") from None
    if not MIN_WEIGHT <= value <= MAX_WEIGHT:
        raise PatternFormatError(
            "confidence_weight", f"must be between {MIN_WEIGHT} and {MAX_WEIGHT}"
        )
    return value


async def create_pattern(
    store: PatternStore,
    *,
    category_id: int,
    pattern_type: PatternType | str,
    pattern_value: str,
    confidence_weight: float | None = None,
    user_created: bool = False,
    active: bool = True,
    metadata: dict[str, Any] | None = None,
) -> Any:
    """Validate, normalize and store a new pattern.

    Raises:
        PatternFormatError: Malformed value, unknown type or out-of-range weight.
        DuplicatePatternError: Same (category, type, value) already stored.
    """
    value = validate_pattern_value(pattern_type, pattern_value)
    ptype = PatternType(pattern_type)
    weight = _validate_weight(confidence_weight)

    if await store.find_duplicate(category_id, ptype, value) is not None:
        raise DuplicatePatternError(
            f"pattern already exists: category_id={category_id} type={ptype.value} value={value!r}"
        )

    pattern = await store.add(
        category_id=category_id,
        pattern_type=ptype,
        pattern_value=value,
        confidence_weight=weight,
        usage_count=0,
        success_count=0,
        success_rate=0.0,
        active=active,
        user_created=user_created,
        metadata_=dict(metadata or {}),
    )
    logger.info(
        "[patterns] Created pattern id=%s category_id=%s type=%s value=%r",
        pattern.id,
        category_id,
        ptype.value,
        value,
    )
    return pattern


async def update_pattern(
    store: PatternStore,
    pattern_id: int,
    *,
    pattern_type: PatternType | str | None = None,
    pattern_value: str | None = None,
    confidence_weight: float | None = None,
    metadata: dict[str, Any] | None = None,
) -> Any | None:
    """Change a pattern's definition, weight or metadata. Counters are never touched here.

    A changed type or value is re-validated against the resulting type.
    Returns None when the pattern does not exist.
    """
    pattern = await store.get(pattern_id)
    if pattern is None:
        return None

    fields: dict[str, Any] = {}

    if pattern_type is not None or pattern_value is not None:
        new_type = pattern_type if pattern_type is not None else pattern.pattern_type
        new_value = pattern_value if pattern_value is not None else pattern.pattern_value
        value = validate_pattern_value(new_type, new_value)
        ptype = PatternType(new_type)

        if ptype != PatternType(pattern.pattern_type) or value != pattern.pattern_value:
            duplicate = await store.find_duplicate(pattern.category_id, ptype, value)
            if duplicate is not None and duplicate.id != pattern.id:
                raise DuplicatePatternError(
                    f"pattern already exists: category_id={pattern.category_id} "
                    f"type={ptype.value} value={value!r}"
                )
            fields["pattern_type"] = ptype
            fields["pattern_value"] = value

    if confidence_weight is not None:
        fields["confidence_weight"] = _validate_weight(confidence_weight)
    if metadata is not None:
        fields["metadata_"] = dict(metadata)

    if not fields:
        return pattern
    return await store.update(pattern_id, **fields)


async def set_active(store: PatternStore, pattern_id: int, active: bool) -> Any | None:
    """Explicitly (re)activate or deactivate a pattern."""
    pattern = await store.update(pattern_id, active=active)
    if pattern is not None:
        logger.info(f"[patterns] Pattern id={pattern_id} set active={active}")
    return pattern


async def sweep_poor_performers(store: PatternStore) -> list[int]:
    """Apply the deactivation rule to every stored pattern. Returns deactivated ids."""
    candidates = await store.list_mature_underperformers(MATURITY_THRESHOLD, POOR_PERFORMANCE_THRESHOLD)

    deactivated: list[int] = []
    for pattern in candidates:
        if await check_and_deactivate(store, pattern):
            deactivated.append(pattern.id)

    logger.info(
        f"[patterns] Sweep checked {len(candidates)} candidates, deactivated {len(deactivated)}"
    )
    return deactivated
