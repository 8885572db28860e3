"""Merchant alias resolution.

Maps raw merchant strings ("STARBUCKS #1234", "SQ *STARBUCKS") to canonical
merchants through alias records.

Lookup order for a raw string:
1. exact raw_name
2. normalized_name
3. fuzzy: best similarity-ranked candidate at or above the threshold
   (skipped when the store has no fuzzy capability, e.g. pg_trgm missing)

Alias confidence only grows with repeated use: once an alias has been seen more
than CONFIDENCE_NUDGE_AFTER times, each further match adds CONFIDENCE_NUDGE_STEP
up to CONFIDENCE_NUDGE_CAP.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any, Protocol

from expense_categorizer.services.errors import FuzzySearchUnavailable, InvariantViolation
from expense_categorizer.services.normalizer import (
    canonicalize_merchant_name,
    display_merchant_name,
    normalize,
)
from expense_categorizer.services.similarity import similarity
from expense_categorizer.settings import get_settings

logger = logging.getLogger("uvicorn.error")

DEFAULT_ALIAS_CONFIDENCE = 1.0
HIGH_CONFIDENCE_THRESHOLD = 0.8
TRUSTWORTHY_MIN_MATCHES = 3

CONFIDENCE_NUDGE_AFTER = 10
CONFIDENCE_NUDGE_STEP = 0.04
CONFIDENCE_NUDGE_CAP = 0.95


class AliasStore(Protocol):
    """Persistence capabilities the resolver needs."""

    async def get_alias(self, alias_id: int) -> Any | None: ...

    async def find_by_raw_name(self, raw_name: str) -> Any | None: ...

    async def find_by_normalized_name(self, normalized_name: str) -> Any | None: ...

    async def find_alias(self, raw_name: str, canonical_merchant_id: int) -> Any | None: ...

    async def similar_aliases(
        self, text: str, limit: int, *, min_score: float = 0.0
    ) -> list[tuple[Any, float]]:
        """Aliases ranked by similarity, best first; rows below min_score may be dropped. Raises FuzzySearchUnavailable."""
        ...

    async def add_alias(self, **fields: Any) -> Any | None:
        """Insert an alias; None when (raw_name, canonical_merchant_id) already exists."""
        ...

    async def increment_match(self, alias_id: int, seen_at: datetime) -> Any | None: ...

    async def merge(self, survivor_id: int, duplicate_id: int) -> Any | None: ...

    async def get_canonical(self, merchant_id: int) -> Any | None: ...

    async def find_canonical_by_name(self, name: str) -> Any | None: ...

    async def similar_canonicals(
        self, name: str, limit: int, *, min_score: float = 0.0
    ) -> list[tuple[Any, float]]:
        """Canonical merchants ranked by similarity, best first; rows below min_score may be dropped. Raises FuzzySearchUnavailable."""
        ...

    async def add_canonical(self, **fields: Any) -> Any: ...

    async def record_merchant_usage(self, merchant_id: int) -> None: ...


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving a raw merchant string to a canonical merchant."""

    canonical_merchant: Any
    alias: Any
    method: str  # exact | normalized | fuzzy | canonical_name | similar_merchant | created
    score: float


# ============================================================
# Pure helpers
# ============================================================


def is_high_confidence(alias: Any) -> bool:
    return float(alias.confidence or 0.0) >= HIGH_CONFIDENCE_THRESHOLD


def is_trustworthy(alias: Any) -> bool:
    """High confidence AND seen at least TRUSTWORTHY_MIN_MATCHES times."""
    return is_high_confidence(alias) and (alias.match_count or 0) >= TRUSTWORTHY_MIN_MATCHES


def similarity_to(alias: Any, text: str | None) -> float:
    """Similarity between an alias and some other merchant text."""
    return similarity(alias.normalized_name or normalize(alias.raw_name), normalize(text))


def next_match_confidence(match_count: int, confidence: float) -> float:
    """Confidence after a match that brought the alias to `match_count` matches.

    A confidence already above the cap is left as is.
    """
    if match_count > CONFIDENCE_NUDGE_AFTER and confidence < CONFIDENCE_NUDGE_CAP:
        return round(min(confidence + CONFIDENCE_NUDGE_STEP, CONFIDENCE_NUDGE_CAP), 6)
    return confidence


def merged_alias_fields(alias: Any, other: Any) -> dict[str, Any]:
    """Combined counters for merging `other` into `alias`.

    match_count sums, confidence takes the max, last_seen_at the most recent
    (a missing value on either side yields the other one).
    """
    seen = [ts for ts in (alias.last_seen_at, other.last_seen_at) if ts is not None]
    return {
        "match_count": (alias.match_count or 0) + (other.match_count or 0),
        "confidence": max(float(alias.confidence or 0.0), float(other.confidence or 0.0)),
        "last_seen_at": max(seen) if seen else None,
    }


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _is_blank(raw: str | None) -> bool:
    return raw is None or not raw.strip()


# ============================================================
# Lookup
# ============================================================


async def fuzzy_match(
    store: AliasStore,
    raw: str | None,
    *,
    threshold: float | None = None,
    limit: int | None = None,
) -> tuple[Any, float] | None:
    """Best similarity-ranked alias at or above the threshold, with its score.

    Returns None for blank input, when nothing clears the threshold, or when
    the store has no fuzzy capability.
    """
    normalized = normalize(raw)
    if not normalized:
        return None

    settings = get_settings()
    threshold = settings.fuzzy_match_threshold if threshold is None else threshold
    limit = settings.fuzzy_candidate_limit if limit is None else limit

    try:
        candidates = await store.similar_aliases(normalized, limit, min_score=threshold)
    except FuzzySearchUnavailable as e:
        logger.debug(f"[aliases] Fuzzy search unavailable, skipping: {e}")
        return None

    best: tuple[Any, float] | None = None
    for alias, score in candidates:
        if score >= threshold and (best is None or score > best[1]):
            best = (alias, score)
    return best


async def lookup_alias(store: AliasStore, raw: str | None) -> tuple[Any, str, float] | None:
    """Like find_best_match, but also reports how the alias was found and its score."""
    if _is_blank(raw):
        return None

    alias = await store.find_by_raw_name(raw)
    if alias is not None:
        return alias, "exact", 1.0

    normalized = normalize(raw)
    if normalized:
        alias = await store.find_by_normalized_name(normalized)
        if alias is not None:
            return alias, "normalized", 1.0

    fuzzy = await fuzzy_match(store, raw)
    if fuzzy is not None:
        return fuzzy[0], "fuzzy", fuzzy[1]
    return None


async def find_best_match(store: AliasStore, raw: str | None) -> Any | None:
    """Alias for a raw merchant string: exact, then normalized, then fuzzy."""
    found = await lookup_alias(store, raw)
    return found[0] if found else None


# ============================================================
# Mutation
# ============================================================


async def record_match(store: AliasStore, alias: Any) -> Any | None:
    """Register another observation of an existing alias."""
    return await store.increment_match(alias.id, _now())


async def record_alias(
    store: AliasStore,
    raw: str | None,
    canonical_merchant: Any,
    confidence: float | None = None,
    *,
    normalized_name: str | None = None,
) -> Any | None:
    """Find-or-create the alias (raw, canonical_merchant).

    A new alias starts at match_count=1 and bumps the merchant's usage counter;
    an existing one is treated as a repeat observation.
    """
    if _is_blank(raw) or canonical_merchant is None:
        return None
    if confidence is not None and not 0.0 <= confidence <= 1.0:
        raise InvariantViolation(f"alias confidence {confidence} outside [0, 1]")

    existing = await store.find_alias(raw, canonical_merchant.id)
    if existing is not None:
        return await record_match(store, existing)

    alias = await store.add_alias(
        raw_name=raw,
        normalized_name=normalized_name or normalize(raw) or None,
        canonical_merchant_id=canonical_merchant.id,
        confidence=DEFAULT_ALIAS_CONFIDENCE if confidence is None else confidence,
        match_count=1,
        last_seen_at=_now(),
    )
    if alias is None:
        # Inserted concurrently by someone else
        existing = await store.find_alias(raw, canonical_merchant.id)
        return await record_match(store, existing) if existing is not None else None

    await store.record_merchant_usage(canonical_merchant.id)
    logger.info(
        "[aliases] Created alias id=%s raw=%r -> merchant id=%s (confidence=%.2f)",
        alias.id,
        raw,
        canonical_merchant.id,
        float(alias.confidence),
    )
    return alias


async def merge_aliases(store: AliasStore, alias: Any, other: Any) -> Any:
    """Fold `other` into `alias` and delete `other`.

    No-op (returns `alias` unchanged) for the same alias or for aliases of
    different canonical merchants.
    """
    if other is None or alias.id == other.id:
        return alias
    if alias.canonical_merchant_id != other.canonical_merchant_id:
        logger.warning(
            "[aliases] Refusing to merge alias id=%s into id=%s: different merchants (%s != %s)",
            other.id,
            alias.id,
            other.canonical_merchant_id,
            alias.canonical_merchant_id,
        )
        return alias

    merged = await store.merge(alias.id, other.id)
    if merged is None:
        return alias

    logger.info(
        "[aliases] Merged alias id=%s into id=%s (match_count=%s confidence=%.2f)",
        other.id,
        alias.id,
        merged.match_count,
        float(merged.confidence),
    )
    return merged


async def find_or_create_canonical(store: AliasStore, raw: str | None) -> Resolution | None:
    """Resolve a raw merchant string to a canonical merchant, creating one if needed.

    Order:
    1. alias lookup (exact, normalized, fuzzy); the raw string is recorded as an alias
    2. canonical merchant with the same canonicalized name
    3. similar canonical merchant (alias confidence = similarity)
    4. new canonical merchant with an exact alias at confidence 1.0
    """
    if _is_blank(raw):
        return None

    found = await lookup_alias(store, raw)
    if found is not None:
        matched, method, score = found
        merchant = await store.get_canonical(matched.canonical_merchant_id)
        if merchant is not None:
            # Fuzzy hits only earn as much confidence as their similarity
            confidence = min(float(score), 1.0) if method == "fuzzy" else DEFAULT_ALIAS_CONFIDENCE
            alias = await record_alias(store, raw, merchant, confidence)
            return Resolution(canonical_merchant=merchant, alias=alias, method=method, score=score)

    name = canonicalize_merchant_name(raw)
    if not name:
        return None

    merchant = await store.find_canonical_by_name(name)
    if merchant is not None:
        alias = await record_alias(store, raw, merchant, DEFAULT_ALIAS_CONFIDENCE)
        return Resolution(canonical_merchant=merchant, alias=alias, method="canonical_name", score=1.0)

    settings = get_settings()
    try:
        candidates = await store.similar_canonicals(
            name, settings.fuzzy_candidate_limit, min_score=settings.fuzzy_match_threshold
        )
    except FuzzySearchUnavailable as e:
        logger.debug(f"[aliases] Canonical fuzzy search unavailable, skipping: {e}")
        candidates = []

    best = max(candidates, key=lambda c: c[1], default=None)
    if best is not None and best[1] >= settings.fuzzy_match_threshold:
        merchant, score = best
        alias = await record_alias(store, raw, merchant, min(float(score), 1.0))
        return Resolution(canonical_merchant=merchant, alias=alias, method="similar_merchant", score=score)

    merchant = await store.add_canonical(
        name=name,
        display_name=display_merchant_name(name),
        usage_count=0,
        metadata_={},
    )
    logger.info(f"[aliases] Created canonical merchant id={merchant.id} name={name!r}")
    alias = await record_alias(store, raw, merchant, DEFAULT_ALIAS_CONFIDENCE)
    return Resolution(canonical_merchant=merchant, alias=alias, method="created", score=1.0)
