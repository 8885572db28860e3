"""Pattern learning from user corrections.

When a user moves a transaction to a category the engine did not pick, the
transaction itself becomes evidence for that category:
- its merchant name becomes a merchant pattern
- the significant words of its description become description patterns
  (keyword patterns only ever look at the merchant name)

Patterns that already exist for the category are reused and nudged up instead
of duplicated. Learned patterns are never user_created, so the usual automatic
retirement still applies if they turn out to be wrong.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re
from typing import Any

from expense_categorizer.services.confidence import MAX_WEIGHT
from expense_categorizer.services.errors import DuplicatePatternError, PatternFormatError
from expense_categorizer.services.pattern_lifecycle import PatternStore, create_pattern
from expense_categorizer.services.pattern_matcher import (
    _GENERIC_WORDS,
    PatternType,
    as_transaction,
    validate_pattern_value,
)

logger = logging.getLogger("uvicorn.error")

LEARNED_PATTERN_WEIGHT = 1.2
REUSE_WEIGHT_BOOST = 0.15
MIN_KEYWORD_LENGTH = 3
MAX_KEYWORDS = 5

_STOP_WORDS = _GENERIC_WORDS | frozenset({"but", "with", "from", "by"})
_WORD_SPLIT_RE = re.compile(r"\W+")


@dataclass
class LearningResult:
    """Patterns touched by one correction."""

    created_ids: list[int] = field(default_factory=list)
    reused_ids: list[int] = field(default_factory=list)

    @property
    def pattern_ids(self) -> list[int]:
        return self.created_ids + self.reused_ids


def extract_keywords(text: str | None) -> list[str]:
    """Significant lowercase words of a description, first occurrence order, at most MAX_KEYWORDS."""
    if not text:
        return []

    keywords: list[str] = []
    for word in _WORD_SPLIT_RE.split(text.lower()):
        if len(word) < MIN_KEYWORD_LENGTH or word.isdigit() or word in _STOP_WORDS:
            continue
        if word not in keywords:
            keywords.append(word)
        if len(keywords) == MAX_KEYWORDS:
            break
    return keywords


async def _find_or_create(
    store: PatternStore,
    result: LearningResult,
    category_id: int,
    pattern_type: PatternType,
    raw_value: str,
    source: dict[str, Any],
) -> None:
    try:
        value = validate_pattern_value(pattern_type, raw_value)
    except PatternFormatError as exc:
        logger.debug(f"[learning] Skipping {pattern_type.value} value {raw_value!r}: {exc}")
        return

    existing = await store.find_duplicate(category_id, pattern_type, value)
    if existing is None:
        try:
            created = await create_pattern(
                store,
                category_id=category_id,
                pattern_type=pattern_type,
                pattern_value=value,
                confidence_weight=LEARNED_PATTERN_WEIGHT,
                user_created=False,
                metadata=source,
            )
        except DuplicatePatternError:
            # Created concurrently between the lookup and the insert.
            existing = await store.find_duplicate(category_id, pattern_type, value)
        else:
            result.created_ids.append(created.id)
            return

    if existing is None or existing.id in result.reused_ids:
        return

    weight = min(float(existing.confidence_weight) + REUSE_WEIGHT_BOOST, MAX_WEIGHT)
    if weight != float(existing.confidence_weight):
        await store.update(existing.id, confidence_weight=weight)
    result.reused_ids.append(existing.id)


async def learn_from_correction(
    store: PatternStore,
    transaction: Any,
    correct_category_id: int,
    *,
    predicted_category_id: int | None = None,
) -> LearningResult:
    """Create or reinforce merchant and description patterns pointing at correct_category_id.

    Does nothing when the prediction was already right. Counters are left alone;
    usage is only recorded through feedback on patterns that actually fired.
    """
    result = LearningResult()
    if predicted_category_id is not None and predicted_category_id == correct_category_id:
        return result

    view = as_transaction(transaction)
    source = {"source": "learned", "predicted_category_id": predicted_category_id}

    if view.merchant_name:
        await _find_or_create(
            store, result, correct_category_id, PatternType.MERCHANT, view.merchant_name, source
        )

    for keyword in extract_keywords(view.description):
        await _find_or_create(store, result, correct_category_id, PatternType.DESCRIPTION, keyword, source)

    if result.pattern_ids:
        logger.info(
            "[learning] Learned from correction -> category_id=%s (created=%s reused=%s)",
            correct_category_id,
            result.created_ids,
            result.reused_ids,
        )
    return result
