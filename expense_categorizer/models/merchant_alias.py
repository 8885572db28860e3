"""Merchant alias model.

One observed raw merchant string mapped to one canonical merchant.
"""

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, validates

from expense_categorizer.services.errors import InvariantViolation
from expense_categorizer.stores.postgres import Base


class MerchantAlias(Base):
    __tablename__ = "merchant_aliases"
    __table_args__ = (
        UniqueConstraint("raw_name", "canonical_merchant_id", name="uq_merchant_aliases_raw_name_merchant"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    canonical_merchant_id: Mapped[int] = mapped_column(
        ForeignKey("canonical_merchants.id", ondelete="CASCADE"),
        index=True,
    )

    raw_name: Mapped[str] = mapped_column(String(255), index=True)
    normalized_name: Mapped[str | None] = mapped_column(String(255), index=True)

    confidence: Mapped[float] = mapped_column(Float, default=1.0)
    match_count: Mapped[int] = mapped_column(Integer, default=0)
    last_seen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    @validates("confidence")
    def _validate_confidence(self, key: str, value: float) -> float:
        if value is not None and not 0.0 <= value <= 1.0:
            raise InvariantViolation(f"{key}={value} outside [0, 1]")
        return value

    @validates("match_count")
    def _validate_match_count(self, key: str, value: int) -> int:
        if value is not None and value < 0:
            raise InvariantViolation(f"{key}={value} is negative")
        return value

    def __repr__(self) -> str:
        return f"<MerchantAlias {self.raw_name!r} -> {self.canonical_merchant_id}>"
