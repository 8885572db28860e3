"""Merchant alias repository (PostgreSQL).

Implements the AliasStore capability:
- exact lookups by raw / normalized name
- similarity-ranked queries through pg_trgm `similarity()`, prefiltered with the
  indexable `%` operator at the caller's minimum score; when the extension is
  missing they raise FuzzySearchUnavailable instead of failing the request
- atomic counter updates and a locked merge
"""

from datetime import datetime
import logging
from typing import Any

from sqlalchemy import Select, and_, case, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from expense_categorizer.models import CanonicalMerchant, MerchantAlias
from expense_categorizer.services.errors import FuzzySearchUnavailable
from expense_categorizer.services.merchant_aliases import (
    CONFIDENCE_NUDGE_AFTER,
    CONFIDENCE_NUDGE_CAP,
    CONFIDENCE_NUDGE_STEP,
    merged_alias_fields,
)
from expense_categorizer.stores.postgres import has_extension

logger = logging.getLogger("uvicorn.error")


def similar_aliases_query(text: str, limit: int, min_score: float = 0.0) -> Select:
    score = func.similarity(MerchantAlias.normalized_name, text).label("score")
    stmt = select(MerchantAlias, score).where(MerchantAlias.normalized_name.is_not(None))
    if min_score > 0:
        stmt = stmt.where(MerchantAlias.normalized_name.op("%")(text))
    return stmt.order_by(score.desc(), MerchantAlias.id).limit(limit)


def similar_canonicals_query(name: str, limit: int, min_score: float = 0.0) -> Select:
    score = func.similarity(CanonicalMerchant.name, name).label("score")
    stmt = select(CanonicalMerchant, score)
    if min_score > 0:
        stmt = stmt.where(CanonicalMerchant.name.op("%")(name))
    return stmt.order_by(score.desc(), CanonicalMerchant.id).limit(limit)


class AliasRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self._trgm_available: bool | None = None

    async def _require_trgm(self) -> None:
        if self._trgm_available is None:
            self._trgm_available = await has_extension(self.session, "pg_trgm")
            if not self._trgm_available:
                logger.debug("[aliases] pg_trgm is not installed; fuzzy search disabled")
        if not self._trgm_available:
            raise FuzzySearchUnavailable("pg_trgm extension is not installed")

    async def _set_similarity_threshold(self, min_score: float) -> None:
        # Transaction-local; `%` compares against it
        if min_score > 0:
            await self.session.execute(
                select(func.set_config("pg_trgm.similarity_threshold", str(min_score), True))
            )

    # ============================================================
    # Aliases
    # ============================================================

    async def get_alias(self, alias_id: int) -> MerchantAlias | None:
        return await self.session.get(MerchantAlias, alias_id)

    async def find_by_raw_name(self, raw_name: str) -> MerchantAlias | None:
        return await self._first_alias(MerchantAlias.raw_name == raw_name)

    async def find_by_normalized_name(self, normalized_name: str) -> MerchantAlias | None:
        return await self._first_alias(MerchantAlias.normalized_name == normalized_name)

    async def find_alias(self, raw_name: str, canonical_merchant_id: int) -> MerchantAlias | None:
        return await self._first_alias(
            MerchantAlias.raw_name == raw_name,
            MerchantAlias.canonical_merchant_id == canonical_merchant_id,
        )

    async def _first_alias(self, *criteria: Any) -> MerchantAlias | None:
        # Several merchants can share a raw string; prefer the most trusted alias
        result = await self.session.execute(
            select(MerchantAlias)
            .where(*criteria)
            .order_by(
                MerchantAlias.confidence.desc(),
                MerchantAlias.match_count.desc(),
                MerchantAlias.id,
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def similar_aliases(
        self, text: str, limit: int, *, min_score: float = 0.0
    ) -> list[tuple[MerchantAlias, float]]:
        await self._require_trgm()
        await self._set_similarity_threshold(min_score)
        result = await self.session.execute(similar_aliases_query(text, limit, min_score))
        return [(alias, float(s)) for alias, s in result.all()]

    async def add_alias(self, **fields: Any) -> MerchantAlias | None:
        result = await self.session.execute(
            pg_insert(MerchantAlias)
            .values({getattr(MerchantAlias, key): value for key, value in fields.items()})
            .on_conflict_do_nothing(constraint="uq_merchant_aliases_raw_name_merchant")
            .returning(MerchantAlias)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def increment_match(self, alias_id: int, seen_at: datetime) -> MerchantAlias | None:
        # SET expressions all read the pre-update row
        match_count = MerchantAlias.match_count + 1
        confidence = case(
            (
                and_(match_count > CONFIDENCE_NUDGE_AFTER, MerchantAlias.confidence < CONFIDENCE_NUDGE_CAP),
                func.least(MerchantAlias.confidence + CONFIDENCE_NUDGE_STEP, CONFIDENCE_NUDGE_CAP),
            ),
            else_=MerchantAlias.confidence,
        )
        result = await self.session.execute(
            update(MerchantAlias)
            .where(MerchantAlias.id == alias_id)
            .values(
                {
                    MerchantAlias.match_count: match_count,
                    MerchantAlias.last_seen_at: seen_at,
                    MerchantAlias.confidence: confidence,
                }
            )
            .returning(MerchantAlias)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def merge(self, survivor_id: int, duplicate_id: int) -> MerchantAlias | None:
        """Fold duplicate into survivor inside a savepoint.

        Both rows are locked in id order; the survivor is written before the
        duplicate is deleted. Returns None (and changes nothing) when either row
        is gone or they belong to different merchants.
        """
        async with self.session.begin_nested():
            result = await self.session.execute(
                select(MerchantAlias)
                .where(MerchantAlias.id.in_([survivor_id, duplicate_id]))
                .order_by(MerchantAlias.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            rows = {alias.id: alias for alias in result.scalars().all()}
            survivor = rows.get(survivor_id)
            duplicate = rows.get(duplicate_id)
            if survivor is None or duplicate is None:
                return None
            if survivor.canonical_merchant_id != duplicate.canonical_merchant_id:
                return None

            for key, value in merged_alias_fields(survivor, duplicate).items():
                setattr(survivor, key, value)
            await self.session.flush()

            await self.session.delete(duplicate)
            await self.session.flush()

        return survivor

    # ============================================================
    # Canonical merchants
    # ============================================================

    async def get_canonical(self, merchant_id: int) -> CanonicalMerchant | None:
        return await self.session.get(CanonicalMerchant, merchant_id)

    async def find_canonical_by_name(self, name: str) -> CanonicalMerchant | None:
        result = await self.session.execute(select(CanonicalMerchant).where(CanonicalMerchant.name == name))
        return result.scalar_one_or_none()

    async def similar_canonicals(
        self, name: str, limit: int, *, min_score: float = 0.0
    ) -> list[tuple[CanonicalMerchant, float]]:
        await self._require_trgm()
        await self._set_similarity_threshold(min_score)
        result = await self.session.execute(similar_canonicals_query(name, limit, min_score))
        return [(merchant, float(s)) for merchant, s in result.all()]

    async def add_canonical(self, **fields: Any) -> CanonicalMerchant:
        result = await self.session.execute(
            pg_insert(CanonicalMerchant)
            .values({getattr(CanonicalMerchant, key): value for key, value in fields.items()})
            .on_conflict_do_nothing(index_elements=[CanonicalMerchant.name])
            .returning(CanonicalMerchant)
            .execution_options(populate_existing=True)
        )
        merchant = result.scalar_one_or_none()
        if merchant is None:
            # Created concurrently under the same name
            merchant = await self.find_canonical_by_name(fields["name"])
        return merchant

    async def record_merchant_usage(self, merchant_id: int) -> None:
        await self.session.execute(
            update(CanonicalMerchant)
            .where(CanonicalMerchant.id == merchant_id)
            .values({CanonicalMerchant.usage_count: CanonicalMerchant.usage_count + 1})
        )
