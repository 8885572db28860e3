"""Canonical merchant model.

The authoritative merchant a family of raw merchant strings resolves to.
`name` is the canonicalized form (see services.normalizer).
"""

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from expense_categorizer.stores.postgres import Base


class CanonicalMerchant(Base):
    __tablename__ = "canonical_merchants"

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    display_name: Mapped[str | None] = mapped_column(String(255))
    category_hint: Mapped[str | None] = mapped_column(String(100))

    # Bumped atomically each time a new alias is attached
    usage_count: Mapped[int] = mapped_column(Integer, default=0)

    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSONB, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<CanonicalMerchant {self.name}>"
