"""Tests for merchant alias lookup, recording, merging and canonical resolution."""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy.dialects.postgresql import asyncpg

from expense_categorizer.services.errors import InvariantViolation
from expense_categorizer.services.merchant_aliases import (
    find_best_match,
    find_or_create_canonical,
    fuzzy_match,
    is_high_confidence,
    is_trustworthy,
    lookup_alias,
    merge_aliases,
    merged_alias_fields,
    next_match_confidence,
    record_alias,
    record_match,
    similarity_to,
)
from expense_categorizer.stores.aliases import similar_aliases_query, similar_canonicals_query


@pytest.fixture
def starbucks(alias_store):
    return alias_store.add_merchant_row("starbucks", display_name="Starbucks")


# ============================================================
# Pure helpers
# ============================================================


@pytest.mark.parametrize(
    ("confidence", "match_count", "expected"),
    [(0.9, 3, True), (0.8, 3, True), (0.9, 2, False), (0.7, 10, False)],
)
def test_trustworthy(confidence, match_count, expected):
    alias = SimpleNamespace(confidence=confidence, match_count=match_count)
    assert is_trustworthy(alias) is expected


def test_high_confidence_threshold():
    assert is_high_confidence(SimpleNamespace(confidence=0.8))
    assert not is_high_confidence(SimpleNamespace(confidence=0.79))


@pytest.mark.parametrize(
    ("match_count", "confidence", "expected"),
    [
        (10, 0.80, 0.80),
        (11, 0.80, 0.84),
        (11, 0.94, 0.95),
        (12, 0.95, 0.95),
        (11, 0.96, 0.96),
        (11, 1.0, 1.0),
    ],
)
def test_confidence_nudge(match_count, confidence, expected):
    assert next_match_confidence(match_count, confidence) == pytest.approx(expected)


def test_merged_fields_tolerate_missing_timestamps():
    seen = datetime(2024, 5, 1, tzinfo=timezone.utc)
    a = SimpleNamespace(match_count=2, confidence=0.6, last_seen_at=None)
    b = SimpleNamespace(match_count=None, confidence=0.7, last_seen_at=seen)

    assert merged_alias_fields(a, b) == {"match_count": 2, "confidence": 0.7, "last_seen_at": seen}

    c = SimpleNamespace(match_count=1, confidence=0.5, last_seen_at=None)
    assert merged_alias_fields(a, c)["last_seen_at"] is None


# ============================================================
# Lookup
# ============================================================


@pytest.mark.asyncio
async def test_exact_match_beats_fuzzy(alias_store, starbucks):
    exact = alias_store.add_alias_row("STARBUCKS COFFEE", starbucks, normalized_name="starbucks coffee")
    alias_store.add_alias_row("STARBUCKS COFFE", starbucks, normalized_name="starbucks coffe")

    alias, method, score = await lookup_alias(alias_store, "STARBUCKS COFFEE")
    assert alias.id == exact.id
    assert method == "exact"
    assert score == 1.0


@pytest.mark.asyncio
async def test_normalized_match(alias_store, starbucks):
    alias = alias_store.add_alias_row("Starbucks *Coffee", starbucks, normalized_name="starbucks coffee")

    found = await lookup_alias(alias_store, "STARBUCKS   COFFEE!")
    assert found == (alias, "normalized", 1.0)


@pytest.mark.asyncio
async def test_fuzzy_match_above_threshold(alias_store, starbucks):
    alias = alias_store.add_alias_row("STARBUCKS COFFEE #1", starbucks, normalized_name="starbucks coffee")

    found = await lookup_alias(alias_store, "Starbucks Coffe")
    assert found is not None
    assert found[0] is alias
    assert found[1] == "fuzzy"
    assert found[2] == pytest.approx(15 / 18)


@pytest.mark.asyncio
async def test_unrelated_name_has_no_match(alias_store, starbucks):
    alias_store.add_alias_row("STARBUCKS COFFEE", starbucks, normalized_name="starbucks coffee")

    assert await find_best_match(alias_store, "NETFLIX.COM") is None


@pytest.mark.asyncio
async def test_explicit_threshold(alias_store, starbucks):
    alias_store.add_alias_row("STARBUCKS COFFEE", starbucks, normalized_name="starbucks coffee")

    assert await fuzzy_match(alias_store, "Starbucks Coffe", threshold=0.9) is None
    assert await fuzzy_match(alias_store, "Starbucks Coffe", threshold=0.8) is not None
    assert alias_store.min_scores == [0.9, 0.8]


def test_similarity_queries_prefilter_with_trigram_operator():
    dialect = asyncpg.dialect()

    aliases_sql = str(similar_aliases_query("starbucks", 5, 0.6).compile(dialect=dialect))
    canonicals_sql = str(similar_canonicals_query("starbucks", 5, 0.6).compile(dialect=dialect))

    assert "merchant_aliases.normalized_name % " in aliases_sql
    assert "canonical_merchants.name % " in canonicals_sql
    assert "ORDER BY score DESC" in aliases_sql


def test_similarity_queries_without_min_score_scan_everything():
    sql = str(similar_canonicals_query("starbucks", 5).compile(dialect=asyncpg.dialect()))

    assert " % " not in sql


@pytest.mark.asyncio
async def test_missing_fuzzy_capability_degrades_to_exact_only(exact_only_alias_store):
    store = exact_only_alias_store
    merchant = store.add_merchant_row("starbucks")
    store.add_alias_row("STARBUCKS COFFEE", merchant, normalized_name="starbucks coffee")

    assert await fuzzy_match(store, "Starbucks Coffe") is None
    assert await find_best_match(store, "Starbucks Coffe") is None
    assert await find_best_match(store, "STARBUCKS COFFEE") is not None


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", [None, "", "   ", "***"])
async def test_blank_input_never_matches(alias_store, starbucks, raw):
    alias_store.add_alias_row("STARBUCKS", starbucks, normalized_name="starbucks")
    assert await find_best_match(alias_store, raw) is None


# ============================================================
# Recording
# ============================================================


@pytest.mark.asyncio
async def test_record_alias_creates_and_bumps_merchant_usage(alias_store, starbucks):
    alias = await record_alias(alias_store, "SQ *STARBUCKS", starbucks)

    assert alias.normalized_name == "sq starbucks"
    assert alias.confidence == 1.0
    assert alias.match_count == 1
    assert alias.last_seen_at is not None
    assert starbucks.usage_count == 1


@pytest.mark.asyncio
async def test_record_alias_reuses_existing(alias_store, starbucks):
    first = await record_alias(alias_store, "SQ *STARBUCKS", starbucks, 0.9)
    again = await record_alias(alias_store, "SQ *STARBUCKS", starbucks, 0.5)

    assert again.id == first.id
    assert again.match_count == 2
    assert again.confidence == 0.9
    assert len(alias_store.aliases) == 1
    assert starbucks.usage_count == 1


@pytest.mark.asyncio
async def test_record_alias_rejects_bad_input(alias_store, starbucks):
    assert await record_alias(alias_store, "  ", starbucks) is None
    assert await record_alias(alias_store, "STARBUCKS", None) is None
    with pytest.raises(InvariantViolation):
        await record_alias(alias_store, "STARBUCKS", starbucks, 1.5)
    assert alias_store.aliases == {}


@pytest.mark.asyncio
async def test_repeated_matches_nudge_confidence(alias_store, starbucks):
    alias = alias_store.add_alias_row("STARBUCKS", starbucks, confidence=0.8, match_count=10)

    updated = await record_match(alias_store, alias)
    assert updated.match_count == 11
    assert updated.confidence == pytest.approx(0.84)

    for _ in range(5):
        updated = await record_match(alias_store, updated)
    assert updated.match_count == 16
    assert updated.confidence == pytest.approx(0.95)


# ============================================================
# Merging
# ============================================================


@pytest.mark.asyncio
async def test_merge_folds_counters_and_deletes_other(alias_store, starbucks):
    earlier = datetime(2024, 1, 1, tzinfo=timezone.utc)
    later = datetime(2024, 6, 1, tzinfo=timezone.utc)
    alias = alias_store.add_alias_row("STARBUCKS", starbucks, confidence=0.9, match_count=10, last_seen_at=earlier)
    other = alias_store.add_alias_row("STARBUCK", starbucks, confidence=0.7, match_count=5, last_seen_at=later)

    merged = await merge_aliases(alias_store, alias, other)

    assert merged.id == alias.id
    assert merged.match_count == 15
    assert merged.confidence == 0.9
    assert merged.last_seen_at == later
    assert other.id not in alias_store.aliases


@pytest.mark.asyncio
async def test_merge_across_merchants_is_a_noop(alias_store, starbucks):
    peets = alias_store.add_merchant_row("peets")
    alias = alias_store.add_alias_row("STARBUCKS", starbucks, match_count=10)
    other = alias_store.add_alias_row("PEETS", peets, match_count=5)

    result = await merge_aliases(alias_store, alias, other)

    assert result is alias
    assert alias.match_count == 10
    assert set(alias_store.aliases) == {alias.id, other.id}


@pytest.mark.asyncio
async def test_merge_with_itself_is_a_noop(alias_store, starbucks):
    alias = alias_store.add_alias_row("STARBUCKS", starbucks, match_count=10)

    assert await merge_aliases(alias_store, alias, alias) is alias
    assert alias.match_count == 10
    assert alias.id in alias_store.aliases


# ============================================================
# Canonical resolution
# ============================================================


@pytest.mark.asyncio
async def test_creates_canonical_merchant_for_unknown_name(alias_store):
    resolution = await find_or_create_canonical(alias_store, "SQ *BLUE BOTTLE COFFEE 84721")

    assert resolution.method == "created"
    merchant = resolution.canonical_merchant
    assert merchant.name == "blue bottle coffee"
    assert merchant.display_name == "Blue Bottle Coffee"
    assert merchant.usage_count == 1
    assert resolution.alias.raw_name == "SQ *BLUE BOTTLE COFFEE 84721"
    assert resolution.alias.confidence == 1.0

    again = await find_or_create_canonical(alias_store, "SQ *BLUE BOTTLE COFFEE 84721")
    assert again.method == "exact"
    assert again.canonical_merchant.id == merchant.id
    assert again.alias.id == resolution.alias.id
    assert again.alias.match_count == 2
    assert len(alias_store.merchants) == 1


@pytest.mark.asyncio
async def test_resolves_by_canonical_name(alias_store, starbucks):
    resolution = await find_or_create_canonical(alias_store, "STARBUCKS #1234")

    assert resolution.method == "canonical_name"
    assert resolution.canonical_merchant is starbucks
    assert resolution.alias.canonical_merchant_id == starbucks.id


@pytest.mark.asyncio
async def test_resolves_to_similar_merchant(alias_store):
    merchant = alias_store.add_merchant_row("blue bottle coffee")

    resolution = await find_or_create_canonical(alias_store, "BLUE BOTTLE COFEE")

    assert resolution.method == "similar_merchant"
    assert resolution.canonical_merchant is merchant
    assert resolution.score == pytest.approx(16 / 19)
    assert resolution.alias.confidence == pytest.approx(16 / 19)


@pytest.mark.asyncio
async def test_fuzzy_alias_hit_records_alias_at_similarity(alias_store, starbucks):
    alias_store.add_alias_row("STARBUCKS COFFEE #1", starbucks, normalized_name="starbucks coffee")

    resolution = await find_or_create_canonical(alias_store, "Starbucks Coffe")

    assert resolution.method == "fuzzy"
    assert resolution.canonical_merchant is starbucks
    assert resolution.alias.raw_name == "Starbucks Coffe"
    assert resolution.alias.confidence == pytest.approx(15 / 18)


@pytest.mark.asyncio
async def test_without_fuzzy_capability_creates_new_merchant(exact_only_alias_store):
    store = exact_only_alias_store
    store.add_merchant_row("blue bottle coffee")

    resolution = await find_or_create_canonical(store, "BLUE BOTTLE COFEE")

    assert resolution.method == "created"
    assert resolution.canonical_merchant.name == "blue bottle cofee"
    assert len(store.merchants) == 2


@pytest.mark.asyncio
async def test_blank_raw_name_resolves_to_nothing(alias_store):
    assert await find_or_create_canonical(alias_store, "   ") is None
    assert await find_or_create_canonical(alias_store, "***") is None
    assert alias_store.merchants == {}


def test_similarity_to_uses_normalized_forms():
    alias = SimpleNamespace(raw_name="STARBUCKS COFFEE #1", normalized_name=None)
    assert similarity_to(alias, "starbucks coffee 1") == 1.0
    assert similarity_to(alias, None) == 0.0
