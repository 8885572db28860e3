"""Shared fixtures: in-memory PatternStore / AliasStore fakes (no database needed)."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import pytest

from expense_categorizer.services.confidence import calculate_success_rate
from expense_categorizer.services.errors import FuzzySearchUnavailable
from expense_categorizer.services.merchant_aliases import merged_alias_fields, next_match_confidence
from expense_categorizer.services.pattern_matcher import PatternType
from expense_categorizer.services.similarity import similarity
from expense_categorizer.settings import get_settings


@dataclass
class FakePattern:
    id: int
    category_id: int
    pattern_type: PatternType
    pattern_value: str
    confidence_weight: float = 1.0
    usage_count: int = 0
    success_count: int = 0
    success_rate: float = 0.0
    active: bool = True
    user_created: bool = False
    metadata_: dict[str, Any] = field(default_factory=dict)


@dataclass
class FakeMerchant:
    id: int
    name: str
    display_name: str | None = None
    category_hint: str | None = None
    usage_count: int = 0
    metadata_: dict[str, Any] = field(default_factory=dict)


@dataclass
class FakeAlias:
    id: int
    raw_name: str
    canonical_merchant_id: int
    normalized_name: str | None = None
    confidence: float = 1.0
    match_count: int = 0
    last_seen_at: datetime | None = None


class FakePatternStore:
    def __init__(self) -> None:
        self.patterns: dict[int, FakePattern] = {}
        self.feedback: list[dict[str, Any]] = []
        self.updates: list[tuple[int, dict[str, Any]]] = []
        self.categories: set[int] = {1, 2, 10, 20}

    def seed(self, category_id: int = 1, pattern_type: str = "merchant", pattern_value: str = "starbucks", **kw: Any) -> FakePattern:
        pattern = FakePattern(
            id=max(self.patterns, default=0) + 1,
            category_id=category_id,
            pattern_type=PatternType(pattern_type),
            pattern_value=pattern_value,
            **kw,
        )
        self.patterns[pattern.id] = pattern
        return pattern

    async def get(self, pattern_id: int) -> FakePattern | None:
        return self.patterns.get(pattern_id)

    async def category_exists(self, category_id: int) -> bool:
        return category_id in self.categories

    async def find_duplicate(self, category_id: int, pattern_type: PatternType, pattern_value: str) -> FakePattern | None:
        for p in self.patterns.values():
            if (p.category_id, p.pattern_type, p.pattern_value) == (category_id, pattern_type, pattern_value):
                return p
        return None

    async def add(self, **fields: Any) -> FakePattern:
        pattern = FakePattern(id=max(self.patterns, default=0) + 1, **fields)
        self.patterns[pattern.id] = pattern
        return pattern

    async def update(self, pattern_id: int, **fields: Any) -> FakePattern | None:
        pattern = self.patterns.get(pattern_id)
        if pattern is None:
            return None
        for key, value in fields.items():
            setattr(pattern, key, value)
        self.updates.append((pattern_id, fields))
        return pattern

    async def increment_usage(self, pattern_id: int, was_successful: bool) -> FakePattern | None:
        pattern = self.patterns.get(pattern_id)
        if pattern is None:
            return None
        pattern.usage_count += 1
        if was_successful:
            pattern.success_count += 1
        pattern.success_rate = calculate_success_rate(pattern.success_count, pattern.usage_count)
        return pattern

    async def list_active(self) -> list[FakePattern]:
        return [p for p in self.patterns.values() if p.active]

    async def list_patterns(
        self,
        *,
        category_id: int | None = None,
        pattern_type: PatternType | None = None,
        active: bool | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[FakePattern]:
        found = [
            p
            for p in sorted(self.patterns.values(), key=lambda p: p.id)
            if (category_id is None or p.category_id == category_id)
            and (pattern_type is None or p.pattern_type == pattern_type)
            and (active is None or p.active == active)
        ]
        return found[offset : offset + limit]

    async def list_mature_underperformers(self, min_usage: int, max_success_rate: float) -> list[FakePattern]:
        return [
            p
            for p in self.patterns.values()
            if p.active and not p.user_created and p.usage_count >= min_usage and p.success_rate < max_success_rate
        ]

    async def add_feedback(self, **fields: Any) -> dict[str, Any]:
        self.feedback.append(fields)
        return fields


class FakeAliasStore:
    def __init__(self, *, fuzzy: bool = True) -> None:
        self.fuzzy = fuzzy
        self.merchants: dict[int, FakeMerchant] = {}
        self.aliases: dict[int, FakeAlias] = {}
        self.min_scores: list[float] = []

    def add_merchant_row(self, name: str, **kw: Any) -> FakeMerchant:
        merchant = FakeMerchant(id=max(self.merchants, default=0) + 1, name=name, **kw)
        self.merchants[merchant.id] = merchant
        return merchant

    def add_alias_row(self, raw_name: str, merchant: FakeMerchant, **kw: Any) -> FakeAlias:
        alias = FakeAlias(id=max(self.aliases, default=0) + 1, raw_name=raw_name, canonical_merchant_id=merchant.id, **kw)
        self.aliases[alias.id] = alias
        return alias

    def _first(self, predicate: Any) -> FakeAlias | None:
        found = sorted(
            (a for a in self.aliases.values() if predicate(a)),
            key=lambda a: (-a.confidence, -a.match_count, a.id),
        )
        return found[0] if found else None

    async def get_alias(self, alias_id: int) -> FakeAlias | None:
        return self.aliases.get(alias_id)

    async def find_by_raw_name(self, raw_name: str) -> FakeAlias | None:
        return self._first(lambda a: a.raw_name == raw_name)

    async def find_by_normalized_name(self, normalized_name: str) -> FakeAlias | None:
        return self._first(lambda a: a.normalized_name == normalized_name)

    async def find_alias(self, raw_name: str, canonical_merchant_id: int) -> FakeAlias | None:
        return self._first(lambda a: a.raw_name == raw_name and a.canonical_merchant_id == canonical_merchant_id)

    async def similar_aliases(self, text: str, limit: int, *, min_score: float = 0.0) -> list[tuple[FakeAlias, float]]:
        if not self.fuzzy:
            raise FuzzySearchUnavailable("pg_trgm extension is not installed")
        self.min_scores.append(min_score)
        scored = [(a, similarity(a.normalized_name, text)) for a in self.aliases.values() if a.normalized_name]
        scored = [item for item in scored if item[1] >= min_score]
        scored.sort(key=lambda item: (-item[1], item[0].id))
        return scored[:limit]

    async def add_alias(self, **fields: Any) -> FakeAlias | None:
        if await self.find_alias(fields["raw_name"], fields["canonical_merchant_id"]) is not None:
            return None
        alias = FakeAlias(id=max(self.aliases, default=0) + 1, **fields)
        self.aliases[alias.id] = alias
        return alias

    async def increment_match(self, alias_id: int, seen_at: datetime) -> FakeAlias | None:
        alias = self.aliases.get(alias_id)
        if alias is None:
            return None
        alias.match_count += 1
        alias.last_seen_at = seen_at
        alias.confidence = next_match_confidence(alias.match_count, alias.confidence)
        return alias

    async def merge(self, survivor_id: int, duplicate_id: int) -> FakeAlias | None:
        survivor = self.aliases.get(survivor_id)
        duplicate = self.aliases.get(duplicate_id)
        if survivor is None or duplicate is None:
            return None
        if survivor.canonical_merchant_id != duplicate.canonical_merchant_id:
            return None
        for key, value in merged_alias_fields(survivor, duplicate).items():
            setattr(survivor, key, value)
        del self.aliases[duplicate_id]
        return survivor

    async def get_canonical(self, merchant_id: int) -> FakeMerchant | None:
        return self.merchants.get(merchant_id)

    async def find_canonical_by_name(self, name: str) -> FakeMerchant | None:
        return next((m for m in self.merchants.values() if m.name == name), None)

    async def similar_canonicals(self, name: str, limit: int, *, min_score: float = 0.0) -> list[tuple[FakeMerchant, float]]:
        if not self.fuzzy:
            raise FuzzySearchUnavailable("pg_trgm extension is not installed")
        self.min_scores.append(min_score)
        scored = [(m, similarity(m.name, name)) for m in self.merchants.values()]
        scored = [item for item in scored if item[1] >= min_score]
        scored.sort(key=lambda item: (-item[1], item[0].id))
        return scored[:limit]

    async def add_canonical(self, **fields: Any) -> FakeMerchant:
        return self.add_merchant_row(**fields)

    async def record_merchant_usage(self, merchant_id: int) -> None:
        self.merchants[merchant_id].usage_count += 1


@pytest.fixture
def pattern_store() -> FakePatternStore:
    return FakePatternStore()


@pytest.fixture
def alias_store() -> FakeAliasStore:
    return FakeAliasStore()


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Settings are cached; make sure env tweaks in one test don't leak into others."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def exact_only_alias_store() -> FakeAliasStore:
    """Alias store without similarity search, like a database missing pg_trgm."""
    return FakeAliasStore(fuzzy=False)
