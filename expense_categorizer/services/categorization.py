"""Transaction categorization from stored patterns.

Scoring:
- every active pattern that matches contributes its effective confidence
  to its category
- the category with the highest total wins; ties go to the category with
  more matching patterns, then to the lower category id
- confidence = winning score / total score over all matched categories

Active patterns are read through a Redis snapshot cache (TTL from settings).
If Redis is unavailable (tests / local minimal env) the store is queried directly.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict, dataclass, field
import logging
from typing import Any, Protocol

from redis.exceptions import RedisError

from expense_categorizer.services.confidence import SPARSE_DATA_THRESHOLD, effective_confidence
from expense_categorizer.services.pattern_lifecycle import PatternStore, UsageOutcome, record_usage
from expense_categorizer.services.pattern_matcher import PatternType, matches
from expense_categorizer.settings import get_settings
from expense_categorizer.stores.redis import (
    delete_active_patterns_cache,
    get_active_patterns_cache,
    set_active_patterns_cache,
)

logger = logging.getLogger("uvicorn.error")

METHOD_PATTERN_MATCH = "pattern_match"
METHOD_NO_MATCH = "no_match"

FEEDBACK_CONFIRMATION = "confirmation"
FEEDBACK_CORRECTION = "correction"
FEEDBACK_REJECTION = "rejection"


class FeedbackStore(Protocol):
    async def add_feedback(self, **fields: Any) -> Any: ...


@dataclass(frozen=True)
class PatternSnapshot:
    """Read-only copy of a pattern, safe to cache and share between requests."""

    id: int
    category_id: int
    pattern_type: PatternType
    pattern_value: str
    confidence_weight: float
    usage_count: int = 0
    success_count: int = 0
    success_rate: float = 0.0
    active: bool = True
    user_created: bool = False

    @classmethod
    def from_model(cls, pattern: Any) -> PatternSnapshot:
        return cls(
            id=pattern.id,
            category_id=pattern.category_id,
            pattern_type=PatternType(pattern.pattern_type),
            pattern_value=pattern.pattern_value,
            confidence_weight=float(pattern.confidence_weight),
            usage_count=pattern.usage_count or 0,
            success_count=pattern.success_count or 0,
            success_rate=float(pattern.success_rate or 0.0),
            active=bool(pattern.active),
            user_created=bool(pattern.user_created),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PatternSnapshot:
        return cls(**{**data, "pattern_type": PatternType(data["pattern_type"])})

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["pattern_type"] = self.pattern_type.value
        return data


@dataclass(frozen=True)
class CategoryScore:
    category_id: int
    score: float
    pattern_ids: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class CategorizationResult:
    category_id: int | None
    confidence: float
    method: str
    matched_pattern_ids: list[int] = field(default_factory=list)
    alternatives: list[CategoryScore] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class FeedbackOutcome:
    pattern_id: int
    was_correct: bool
    usage: UsageOutcome


def categorize(transaction: Any, patterns: list[Any]) -> CategorizationResult:
    """Pick the best category for a transaction. Pure: no store access."""
    totals: dict[int, float] = defaultdict(float)
    matched: dict[int, list[Any]] = defaultdict(list)

    for pattern in patterns:
        if not matches(pattern, transaction):
            continue
        totals[pattern.category_id] += effective_confidence(pattern)
        matched[pattern.category_id].append(pattern)

    if not totals:
        return CategorizationResult(
            category_id=None, confidence=0.0, method=METHOD_NO_MATCH, reasons=["NO_MATCH"]
        )

    ranked = sorted(
        totals,
        key=lambda cid: (-totals[cid], -len(matched[cid]), cid),
    )
    winner = ranked[0]
    total_score = sum(totals.values())
    winning = matched[winner]

    reasons = sorted({f"MATCHED_{PatternType(p.pattern_type).name}" for p in winning})
    if any((p.usage_count or 0) < SPARSE_DATA_THRESHOLD for p in winning):
        reasons.append("SPARSE_DATA")
    if len(ranked) > 1:
        reasons.append("COMPETING_CATEGORIES")
        if totals[ranked[1]] == totals[winner]:
            reasons.append("TIE_BROKEN")

    return CategorizationResult(
        category_id=winner,
        confidence=totals[winner] / total_score if total_score > 0 else 0.0,
        method=METHOD_PATTERN_MATCH,
        matched_pattern_ids=sorted(p.id for p in winning),
        alternatives=[
            CategoryScore(
                category_id=cid,
                score=totals[cid],
                pattern_ids=sorted(p.id for p in matched[cid]),
            )
            for cid in ranked[1:]
        ],
        reasons=reasons,
    )


async def load_active_patterns(store: Any) -> list[PatternSnapshot]:
    """Active pattern snapshots, from Redis when cached, else from the store."""
    ttl = get_settings().pattern_cache_ttl

    if ttl > 0:
        cached = await _try_get_cached_patterns()
        if cached is not None:
            return cached

    rows = await store.list_active()
    snapshots = [PatternSnapshot.from_model(p) for p in rows]

    if ttl > 0:
        await _try_set_cached_patterns(snapshots, ttl)
    return snapshots


async def invalidate_pattern_cache() -> None:
    """Drop the cached snapshot after any pattern definition or activity change."""
    try:
        await delete_active_patterns_cache()
    except (RuntimeError, RedisError):
        # Redis may be unavailable in tests/local minimal env.
        return


async def apply_feedback(
    store: PatternStore,
    feedback_store: FeedbackStore,
    pattern_ids: list[int],
    correct_category_id: int | None,
    *,
    context: dict[str, Any] | None = None,
) -> list[FeedbackOutcome]:
    """Record whether each pattern that fired picked the right category.

    correct_category_id=None means the user rejected the categorization without
    naming a replacement; every pattern counts as a failure then.
    """
    outcomes: list[FeedbackOutcome] = []

    for pattern_id in dict.fromkeys(pattern_ids):
        pattern = await store.get(pattern_id)
        if pattern is None:
            logger.warning(f"[feedback] Pattern id={pattern_id} not found, skipping")
            continue

        confidence_before = effective_confidence(pattern)
        was_correct = correct_category_id is not None and pattern.category_id == correct_category_id
        usage = await record_usage(store, pattern_id, was_correct)
        if usage is None:
            continue

        if correct_category_id is None:
            feedback_type = FEEDBACK_REJECTION
        elif was_correct:
            feedback_type = FEEDBACK_CONFIRMATION
        else:
            feedback_type = FEEDBACK_CORRECTION

        await feedback_store.add_feedback(
            pattern_id=pattern_id,
            category_id=correct_category_id,
            was_correct=was_correct,
            confidence_score=confidence_before,
            feedback_type=feedback_type,
            context_data=dict(context or {}),
        )
        outcomes.append(FeedbackOutcome(pattern_id=pattern_id, was_correct=was_correct, usage=usage))

    logger.info(
        "[feedback] Applied feedback to %s patterns (correct_category_id=%s, deactivated=%s)",
        len(outcomes),
        correct_category_id,
        sum(1 for o in outcomes if o.usage.deactivated),
    )
    return outcomes


async def _try_get_cached_patterns() -> list[PatternSnapshot] | None:
    try:
        payload = await get_active_patterns_cache()
    except (RuntimeError, RedisError):
        return None
    except ValueError:
        logger.warning("[patterns] Active pattern cache holds invalid JSON, reading from store")
        return None
    if not payload:
        return None

    try:
        return [PatternSnapshot.from_dict(item) for item in payload.get("patterns", [])]
    except (KeyError, TypeError, ValueError):
        logger.warning("[patterns] Ignoring malformed active pattern cache payload")
        return None


async def _try_set_cached_patterns(snapshots: list[PatternSnapshot], ttl: int) -> None:
    payload = {"patterns": [s.to_dict() for s in snapshots]}
    try:
        await set_active_patterns_cache(payload, ttl)
    except (RuntimeError, RedisError):
        return
