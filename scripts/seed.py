#!/usr/bin/env python3
"""Seed database with initial data.

Creates:
- Spending categories
- Categorization patterns (merchant, keyword, description, amount_range, time, regex)
- Canonical merchants with their common raw aliases

Seed script is idempotent: existing categories are reused and duplicate
patterns / aliases are skipped.

Usage:
    python -m scripts.seed
"""

import asyncio
import os
import sys

# Add parent to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from expense_categorizer.models import Category
from expense_categorizer.services.errors import DuplicatePatternError
from expense_categorizer.services.merchant_aliases import find_or_create_canonical
from expense_categorizer.services.pattern_lifecycle import create_pattern
from expense_categorizer.stores.aliases import AliasRepository
from expense_categorizer.stores.patterns import PatternRepository
from expense_categorizer.stores.postgres import close_db, get_session, init_db, ping_db

load_dotenv()

# ============================================================
# Categories
# ============================================================

CATEGORIES = {
    "Food & Dining": "Restaurants, coffee shops and takeout",
    "Groceries": "Supermarkets and grocery stores",
    "Transportation": "Ride sharing, fuel, parking and transit",
    "Shopping": "Retail and online shopping",
    "Entertainment": "Streaming, movies and events",
    "Utilities": "Electricity, water, internet and phone",
    "Health": "Pharmacies, clinics and insurance",
}

# ============================================================
# Patterns: (category, type, value, weight)
# ============================================================

PATTERNS = [
    ("Food & Dining", "merchant", "starbucks", 4.0),
    ("Food & Dining", "merchant", "mcdonald", 3.0),
    ("Food & Dining", "keyword", "coffee", 1.5),
    ("Food & Dining", "keyword", "restaurant", 1.5),
    ("Food & Dining", "description", "lunch", 1.0),
    ("Food & Dining", "time", "12:00-14:00", 0.5),
    ("Groceries", "merchant", "walmart", 3.0),
    ("Groceries", "merchant", "whole foods", 3.5),
    ("Groceries", "keyword", "supermarket", 2.0),
    ("Groceries", "amount_range", "20.00-200.00", 0.5),
    ("Transportation", "merchant", "uber", 4.0),
    ("Transportation", "merchant", "lyft", 4.0),
    ("Transportation", "keyword", "parking", 2.0),
    ("Transportation", "regex", r"\b(shell|chevron|exxon)\b", 3.0),
    ("Shopping", "merchant", "amazon", 3.0),
    ("Shopping", "merchant", "target", 2.5),
    ("Entertainment", "merchant", "netflix", 4.5),
    ("Entertainment", "merchant", "spotify", 4.5),
    ("Entertainment", "time", "weekend", 0.3),
    ("Utilities", "keyword", "electric", 2.0),
    ("Utilities", "description", "internet service", 2.5),
    ("Health", "keyword", "pharmacy", 3.0),
    ("Health", "merchant", "cvs", 3.0),
]

# ============================================================
# Raw merchant strings as they appear on statements
# ============================================================

RAW_MERCHANTS = [
    "STARBUCKS",
    "STARBUCKS #1234",
    "SQ *STARBUCKS",
    "UBER *TRIP",
    "UBER TRIP 8472",
    "AMAZON.COM",
    "AMZN MKTP US",
    "WALMART SUPERCENTER",
    "NETFLIX.COM",
    "WHOLE FOODS MARKET #10234",
]


async def seed_categories(session: AsyncSession) -> dict[str, int]:
    """Seed categories and return mapping of name -> id."""
    category_map: dict[str, int] = {}

    for name, description in CATEGORIES.items():
        result = await session.execute(select(Category).where(Category.name == name))
        existing = result.scalar_one_or_none()

        if existing:
            print(f"  skip {name} (exists)")
            category_map[name] = existing.id
        else:
            category = Category(name=name, description=description)
            session.add(category)
            await session.flush()
            category_map[name] = category.id
            print(f"  + {name}")

    return category_map


async def seed_patterns(session: AsyncSession, category_map: dict[str, int]) -> None:
    store = PatternRepository(session)

    for category, pattern_type, value, weight in PATTERNS:
        try:
            await create_pattern(
                store,
                category_id=category_map[category],
                pattern_type=pattern_type,
                pattern_value=value,
                confidence_weight=weight,
                user_created=False,
                metadata={"source": "seed"},
            )
            print(f"  + {category}: {pattern_type}={value!r}")
        except DuplicatePatternError:
            print(f"  skip {category}: {pattern_type}={value!r} (exists)")


async def seed_merchants(session: AsyncSession) -> None:
    store = AliasRepository(session)

    for raw in RAW_MERCHANTS:
        resolution = await find_or_create_canonical(store, raw)
        if resolution is None:
            print(f"  skip {raw!r} (blank after canonicalization)")
            continue
        print(f"  {raw!r} -> {resolution.canonical_merchant.name!r} ({resolution.method})")


async def main() -> None:
    await init_db()
    await ping_db()

    try:
        async with get_session() as session:
            print("Seeding database...")

            print("\nCategories:")
            category_map = await seed_categories(session)

            print("\nPatterns:")
            await seed_patterns(session, category_map)

            print("\nMerchants:")
            await seed_merchants(session)

        print("\nDatabase seeded successfully!")
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
