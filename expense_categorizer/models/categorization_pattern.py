"""Categorization pattern model.

A typed matching rule that points at a category, plus its usage counters.
Counters only change through the atomic increment in stores.patterns;
the attribute validators below reject out-of-range values on assignment.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Enum, Float, ForeignKey, Integer, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, validates

from expense_categorizer.services.confidence import DEFAULT_WEIGHT, MAX_WEIGHT, MIN_WEIGHT
from expense_categorizer.services.errors import InvariantViolation
from expense_categorizer.services.pattern_matcher import PatternType
from expense_categorizer.stores.postgres import Base


class CategorizationPattern(Base):
    __tablename__ = "categorization_patterns"
    __table_args__ = (
        UniqueConstraint(
            "category_id",
            "pattern_type",
            "pattern_value",
            name="uq_categorization_patterns_category_type_value",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id", ondelete="CASCADE"), index=True)

    pattern_type: Mapped[PatternType] = mapped_column(
        Enum(
            PatternType,
            native_enum=False,
            length=20,
            values_callable=lambda enum: [e.value for e in enum],
        ),
        index=True,
    )
    pattern_value: Mapped[str] = mapped_column(Text)

    confidence_weight: Mapped[float] = mapped_column(Float, default=DEFAULT_WEIGHT)
    usage_count: Mapped[int] = mapped_column(Integer, default=0)
    success_count: Mapped[int] = mapped_column(Integer, default=0)
    success_rate: Mapped[float] = mapped_column(Float, default=0.0)

    active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    user_created: Mapped[bool] = mapped_column(Boolean, default=False, index=True)

    # "metadata" is reserved on declarative classes
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSONB, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    @validates("confidence_weight")
    def _validate_weight(self, key: str, value: float) -> float:
        if value is not None and not MIN_WEIGHT <= value <= MAX_WEIGHT:
            raise InvariantViolation(f"{key}={value} outside [{MIN_WEIGHT}, {MAX_WEIGHT}]")
        return value

    @validates("usage_count", "success_count")
    def _validate_counter(self, key: str, value: int) -> int:
        if value is not None and value < 0:
            raise InvariantViolation(f"{key}={value} is negative")
        return value

    @validates("success_rate")
    def _validate_rate(self, key: str, value: float) -> float:
        if value is not None and not 0.0 <= value <= 1.0:
            raise InvariantViolation(f"{key}={value} outside [0, 1]")
        return value

    def __repr__(self) -> str:
        return f"<CategorizationPattern {self.id} {self.pattern_type}={self.pattern_value!r}>"
