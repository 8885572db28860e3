"""Pattern feedback model.

Audit trail of correctness feedback applied to patterns
(confirmation / correction / rejection).
"""

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from expense_categorizer.stores.postgres import Base


class PatternFeedback(Base):
    __tablename__ = "pattern_feedbacks"

    id: Mapped[int] = mapped_column(primary_key=True)
    pattern_id: Mapped[int] = mapped_column(
        ForeignKey("categorization_patterns.id", ondelete="CASCADE"),
        index=True,
    )
    # Correct category as given by the user (None for a plain rejection)
    category_id: Mapped[int | None] = mapped_column(ForeignKey("categories.id", ondelete="SET NULL"), index=True)

    was_correct: Mapped[bool] = mapped_column(Boolean)
    confidence_score: Mapped[float | None] = mapped_column(Float)
    feedback_type: Mapped[str] = mapped_column(String(20), index=True)
    context_data: Mapped[dict[str, Any]] = mapped_column(JSONB, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
