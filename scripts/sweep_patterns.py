#!/usr/bin/env python3
"""Retire poorly performing patterns in bulk.

Deactivation normally happens right after each usage is recorded. This job
applies the same rule to every stored pattern, e.g. after thresholds change or
after counters were imported in bulk.

Rule: usage_count >= 20, success_rate < 0.3 and not user-created.

Usage:
    python -m scripts.sweep_patterns
"""

import asyncio
import os
import sys

# Ensure imports work when executed as a script/module
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv  # noqa: E402

from expense_categorizer.services.categorization import invalidate_pattern_cache  # noqa: E402
from expense_categorizer.services.pattern_lifecycle import sweep_poor_performers  # noqa: E402
from expense_categorizer.stores.patterns import PatternRepository  # noqa: E402
from expense_categorizer.stores.postgres import close_db, get_session, init_db, ping_db  # noqa: E402
from expense_categorizer.stores.redis import close_redis, init_redis  # noqa: E402

load_dotenv()


async def main() -> None:
    await init_db()
    await ping_db()
    try:
        await init_redis()
    except Exception as e:
        # Without Redis there is no snapshot cache to invalidate.
        print(f"Redis unavailable, cache will expire on its own: {e}")

    try:
        async with get_session() as session:
            deactivated = await sweep_poor_performers(PatternRepository(session))

        if deactivated:
            await invalidate_pattern_cache()

        print({"ok": True, "deactivated": len(deactivated), "pattern_ids": deactivated})
    finally:
        await close_redis()
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
