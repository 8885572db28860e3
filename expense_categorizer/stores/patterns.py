"""Pattern repository (PostgreSQL).

Implements the PatternStore and FeedbackStore capabilities. Counter updates
are single UPDATE ... RETURNING statements so concurrent requests never lose
an increment.
"""

from typing import Any

from sqlalchemy import Float, cast, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from expense_categorizer.models import CategorizationPattern, Category, PatternFeedback
from expense_categorizer.services.pattern_matcher import PatternType


class PatternRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, pattern_id: int) -> CategorizationPattern | None:
        return await self.session.get(CategorizationPattern, pattern_id)

    async def category_exists(self, category_id: int) -> bool:
        return await self.session.get(Category, category_id) is not None

    async def find_duplicate(
        self, category_id: int, pattern_type: PatternType, pattern_value: str
    ) -> CategorizationPattern | None:
        result = await self.session.execute(
            select(CategorizationPattern).where(
                CategorizationPattern.category_id == category_id,
                CategorizationPattern.pattern_type == pattern_type,
                CategorizationPattern.pattern_value == pattern_value,
            )
        )
        return result.scalar_one_or_none()

    async def add(self, **fields: Any) -> CategorizationPattern:
        pattern = CategorizationPattern(**fields)
        self.session.add(pattern)
        await self.session.flush()
        await self.session.refresh(pattern)
        return pattern

    async def update(self, pattern_id: int, **fields: Any) -> CategorizationPattern | None:
        values = {getattr(CategorizationPattern, key): value for key, value in fields.items()}
        result = await self.session.execute(
            update(CategorizationPattern)
            .where(CategorizationPattern.id == pattern_id)
            .values(values)
            .returning(CategorizationPattern)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def increment_usage(self, pattern_id: int, was_successful: bool) -> CategorizationPattern | None:
        # SET expressions all read the pre-update row
        usage_count = CategorizationPattern.usage_count + 1
        success_count = CategorizationPattern.success_count + (1 if was_successful else 0)
        result = await self.session.execute(
            update(CategorizationPattern)
            .where(CategorizationPattern.id == pattern_id)
            .values(
                {
                    CategorizationPattern.usage_count: usage_count,
                    CategorizationPattern.success_count: success_count,
                    CategorizationPattern.success_rate: cast(success_count, Float) / usage_count,
                }
            )
            .returning(CategorizationPattern)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_active(self) -> list[CategorizationPattern]:
        result = await self.session.execute(
            select(CategorizationPattern)
            .where(CategorizationPattern.active.is_(True))
            .order_by(CategorizationPattern.id)
        )
        return list(result.scalars().all())

    async def list_patterns(
        self,
        *,
        category_id: int | None = None,
        pattern_type: PatternType | None = None,
        active: bool | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[CategorizationPattern]:
        query = select(CategorizationPattern)
        if category_id is not None:
            query = query.where(CategorizationPattern.category_id == category_id)
        if pattern_type is not None:
            query = query.where(CategorizationPattern.pattern_type == pattern_type)
        if active is not None:
            query = query.where(CategorizationPattern.active.is_(active))
        result = await self.session.execute(
            query.order_by(CategorizationPattern.id).limit(limit).offset(offset)
        )
        return list(result.scalars().all())

    async def list_mature_underperformers(
        self, min_usage: int, max_success_rate: float
    ) -> list[CategorizationPattern]:
        result = await self.session.execute(
            select(CategorizationPattern)
            .where(
                CategorizationPattern.active.is_(True),
                CategorizationPattern.user_created.is_(False),
                CategorizationPattern.usage_count >= min_usage,
                CategorizationPattern.success_rate < max_success_rate,
            )
            .order_by(CategorizationPattern.id)
        )
        return list(result.scalars().all())

    async def add_feedback(self, **fields: Any) -> PatternFeedback:
        feedback = PatternFeedback(**fields)
        self.session.add(feedback)
        await self.session.flush()
        return feedback
